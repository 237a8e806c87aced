"""Initial schema: sources, news, odds, query runs, candidates, clip matches.

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from alembic import op  # type: ignore[attr-defined]
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None

# Enum type names match SQLAlchemy's defaults for the Python enum classes.
ENUMS: dict[str, tuple[str, ...]] = {
    "sport": (
        "NFL", "NBA", "MLB", "NHL", "CBB", "CFB", "SOCCER", "BOXING", "SPORTS_BETTING",
    ),
    "scheduletype": ("MANUAL", "HOURLY", "DAILY", "WEEKDAYS", "WEEKLY", "CUSTOM"),
    "triggertype": ("MANUAL", "SCHEDULED", "SYSTEM", "API"),
    "sourcetype": (
        "RSS_FEED",
        "WEBSITE_SCRAPE",
        "ESPN_API",
        "SPORTSGRID_API",
        "DRAFTKINGS_API",
        "DRAFTKINGS_SCRAPE",
    ),
    "sourcestatus": ("ACTIVE", "PAUSED", "ERROR", "RATE_LIMITED"),
    "fetchrunstatus": ("QUEUED", "RUNNING", "SUCCEEDED", "FAILED", "SKIPPED"),
    "newsitemtype": (
        "BREAKING", "TRADE", "INJURY", "BETTING_LINE", "GAME_RESULT", "RUMOR",
        "SCHEDULE", "ANALYSIS",
    ),
    "gamestatus": ("FINAL", "POSTPONED", "DELAYED", "IN_PROGRESS", "SCHEDULED"),
    "queryrunstatus": ("QUEUED", "RUNNING", "SUCCEEDED", "FAILED", "CANCELLED"),
    "transcriptsource": ("YOUTUBE_CAPTIONS", "THIRD_PARTY"),
    "candidatestatus": ("NEW", "SHORTLISTED", "DISMISSED", "EXPORTED"),
    "clipmatchstatus": ("PENDING", "MATCHED", "DISMISSED"),
    "auditeventtype": (
        "SOURCE_CREATED",
        "SOURCE_UPDATED",
        "SOURCE_FETCH_STARTED",
        "QUERY_CREATED",
        "QUERY_RUN_STARTED",
        "CANDIDATE_STATUS_CHANGED",
        "CLIP_MATCH_CREATED",
        "CLIP_MATCH_UPDATED",
        "CLIP_MATCH_DELETED",
    ),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _jsonb_list(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(),
        nullable=False,
        server_default=sa.text("'[]'::jsonb"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for name in ENUMS:
        _enum(name).create(bind, checkfirst=True)

    op.create_table(
        "sources",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", _enum("sourcetype"), nullable=False),
        sa.Column("sport", _enum("sport"), nullable=False),
        sa.Column("config", postgresql.JSONB(), nullable=False),
        sa.Column("status", _enum("sourcestatus"), nullable=False),
        sa.Column("is_scheduled", sa.Boolean(), nullable=False),
        sa.Column("schedule_type", _enum("scheduletype"), nullable=False),
        sa.Column("schedule_cron", sa.String(), nullable=True),
        sa.Column("schedule_timezone", sa.String(), nullable=False),
        sa.Column("refresh_interval", sa.Integer(), nullable=False),
        sa.Column("next_fetch_at", sa.DateTime(), nullable=True),
        sa.Column("last_scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("last_fetch_at", sa.DateTime(), nullable=True),
        sa.Column("last_success_at", sa.DateTime(), nullable=True),
        sa.Column("last_error_at", sa.DateTime(), nullable=True),
        sa.Column("last_error_message", sa.String(), nullable=True),
        sa.Column("fetch_count", sa.Integer(), nullable=False),
        sa.Column("error_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    for column in ("org_id", "type", "sport", "status", "is_scheduled", "next_fetch_at", "deleted_at"):
        op.create_index(f"ix_sources_{column}", "sources", [column])

    op.create_table(
        "source_fetch_runs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("source_id", sa.Integer(), sa.ForeignKey("sources.id"), nullable=False),
        sa.Column("status", _enum("fetchrunstatus"), nullable=False),
        sa.Column("triggered_by", _enum("triggertype"), nullable=False),
        sa.Column("items_fetched", sa.Integer(), nullable=False),
        sa.Column("new_items", sa.Integer(), nullable=False),
        sa.Column("results_created", sa.Integer(), nullable=False),
        sa.Column("odds_created", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_source_fetch_runs_source_id", "source_fetch_runs", ["source_id"])
    op.create_index("ix_source_fetch_runs_created_at", "source_fetch_runs", ["created_at"])
    op.create_index(
        "ix_source_fetch_runs_source_status", "source_fetch_runs", ["source_id", "status"]
    )

    op.create_table(
        "news_items",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("source_id", sa.Integer(), sa.ForeignKey("sources.id"), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("type", _enum("newsitemtype"), nullable=False),
        sa.Column("sport", _enum("sport"), nullable=False),
        sa.Column("headline", sa.String(), nullable=False),
        sa.Column("content", sa.String(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("author", sa.String(), nullable=True),
        sa.Column("published_at", sa.DateTime(), nullable=False),
        _jsonb_list("teams"),
        _jsonb_list("players"),
        _jsonb_list("topics"),
        sa.Column("importance_score", sa.Integer(), nullable=True),
        sa.Column(
            "score_breakdown",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("is_processed", sa.Boolean(), nullable=False),
        sa.Column("is_paired", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "org_id", "source_id", "external_id", name="uq_news_items_org_source_external"
        ),
    )
    for column in (
        "org_id", "source_id", "sport", "published_at", "importance_score",
        "is_processed", "is_paired",
    ):
        op.create_index(f"ix_news_items_{column}", "news_items", [column])

    op.create_table(
        "odds_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("source_id", sa.Integer(), sa.ForeignKey("sources.id"), nullable=False),
        sa.Column("sport", _enum("sport"), nullable=False),
        sa.Column("external_game_id", sa.String(), nullable=True),
        sa.Column("home_team", sa.String(), nullable=False),
        sa.Column("away_team", sa.String(), nullable=False),
        sa.Column("game_date", sa.DateTime(), nullable=False),
        sa.Column("home_moneyline", sa.Integer(), nullable=True),
        sa.Column("away_moneyline", sa.Integer(), nullable=True),
        sa.Column("spread", sa.Float(), nullable=True),
        sa.Column("spread_juice", sa.Integer(), nullable=True),
        sa.Column("over_under", sa.Float(), nullable=True),
        sa.Column("over_juice", sa.Integer(), nullable=True),
        sa.Column("under_juice", sa.Integer(), nullable=True),
        sa.Column("captured_at", sa.DateTime(), nullable=False),
    )
    for column in ("org_id", "source_id", "sport", "external_game_id", "game_date"):
        op.create_index(f"ix_odds_snapshots_{column}", "odds_snapshots", [column])

    op.create_table(
        "game_results",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("source_id", sa.Integer(), sa.ForeignKey("sources.id"), nullable=False),
        sa.Column("sport", _enum("sport"), nullable=False),
        sa.Column("external_game_id", sa.String(), nullable=True),
        sa.Column("home_team", sa.String(), nullable=False),
        sa.Column("away_team", sa.String(), nullable=False),
        sa.Column("game_date", sa.DateTime(), nullable=False),
        sa.Column("home_score", sa.Integer(), nullable=False),
        sa.Column("away_score", sa.Integer(), nullable=False),
        sa.Column("status", _enum("gamestatus"), nullable=False),
        sa.Column("spread_winner", sa.String(), nullable=True),
        sa.Column("total_result", sa.String(), nullable=True),
        sa.Column("stats", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "org_id", "home_team", "away_team", "game_date", name="uq_game_results_matchup"
        ),
    )
    for column in ("org_id", "source_id", "sport", "game_date"):
        op.create_index(f"ix_game_results_{column}", "game_results", [column])

    op.create_table(
        "query_definitions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("sport", _enum("sport"), nullable=False),
        _jsonb_list("keywords"),
        _jsonb_list("channel_ids"),
        sa.Column("recency_days", sa.Integer(), nullable=False),
        sa.Column("max_results", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_scheduled", sa.Boolean(), nullable=False),
        sa.Column("schedule_type", _enum("scheduletype"), nullable=False),
        sa.Column("schedule_cron", sa.String(), nullable=True),
        sa.Column("schedule_timezone", sa.String(), nullable=False),
        sa.Column("refresh_interval", sa.Integer(), nullable=False),
        sa.Column("next_run_at", sa.DateTime(), nullable=True),
        sa.Column("last_run_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    for column in ("org_id", "sport", "is_active", "is_scheduled", "next_run_at", "deleted_at"):
        op.create_index(f"ix_query_definitions_{column}", "query_definitions", [column])

    op.create_table(
        "query_runs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column(
            "query_definition_id",
            sa.Integer(),
            sa.ForeignKey("query_definitions.id"),
            nullable=False,
        ),
        sa.Column("status", _enum("queryrunstatus"), nullable=False),
        sa.Column("triggered_by", _enum("triggertype"), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("progress_message", sa.String(), nullable=True),
        sa.Column("videos_fetched", sa.Integer(), nullable=False),
        sa.Column("transcripts_fetched", sa.Integer(), nullable=False),
        sa.Column("videos_processed", sa.Integer(), nullable=False),
        sa.Column("candidates_produced", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    for column in ("org_id", "query_definition_id", "status", "created_at"):
        op.create_index(f"ix_query_runs_{column}", "query_runs", [column])

    op.create_table(
        "youtube_videos",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("youtube_video_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("channel_title", sa.String(), nullable=False),
        sa.Column("published_at", sa.DateTime(), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=True),
        sa.Column("like_count", sa.Integer(), nullable=True),
        sa.Column("comment_count", sa.Integer(), nullable=True),
        sa.Column("thumbnail_url", sa.String(), nullable=True),
        _jsonb_list("tags"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("org_id", "youtube_video_id", name="uq_youtube_videos_org_video"),
    )
    for column in ("org_id", "youtube_video_id", "published_at"):
        op.create_index(f"ix_youtube_videos_{column}", "youtube_videos", [column])

    op.create_table(
        "transcripts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("video_id", sa.Integer(), sa.ForeignKey("youtube_videos.id"), nullable=False),
        sa.Column("source", _enum("transcriptsource"), nullable=False),
        sa.Column("language", sa.String(), nullable=False),
        sa.Column("full_text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("video_id", name="uq_transcripts_video"),
    )
    op.create_index("ix_transcripts_org_id", "transcripts", ["org_id"])

    op.create_table(
        "transcript_segments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "transcript_id", sa.Integer(), sa.ForeignKey("transcripts.id"), nullable=False
        ),
        sa.Column("start_seconds", sa.Float(), nullable=False),
        sa.Column("end_seconds", sa.Float(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
    )
    op.create_index(
        "ix_transcript_segments_transcript_id", "transcript_segments", ["transcript_id"]
    )

    op.create_table(
        "candidates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("video_id", sa.Integer(), sa.ForeignKey("youtube_videos.id"), nullable=False),
        sa.Column("query_run_id", sa.Integer(), sa.ForeignKey("query_runs.id"), nullable=False),
        sa.Column(
            "query_definition_id",
            sa.Integer(),
            sa.ForeignKey("query_definitions.id"),
            nullable=False,
        ),
        sa.Column("relevance_score", sa.Float(), nullable=False),
        sa.Column(
            "score_breakdown",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("status", _enum("candidatestatus"), nullable=False),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("why_relevant", sa.Text(), nullable=True),
        sa.Column(
            "entities",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("video_id", "query_run_id", name="uq_candidates_video_run"),
    )
    for column in (
        "org_id", "video_id", "query_run_id", "query_definition_id",
        "relevance_score", "status", "deleted_at",
    ):
        op.create_index(f"ix_candidates_{column}", "candidates", [column])

    op.create_table(
        "candidate_moments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("candidate_id", sa.Integer(), sa.ForeignKey("candidates.id"), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("start_seconds", sa.Float(), nullable=False),
        sa.Column("end_seconds", sa.Float(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("supporting_quote", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("start_seconds < end_seconds", name="ck_candidate_moments_range"),
    )
    op.create_index("ix_candidate_moments_org_id", "candidate_moments", ["org_id"])
    op.create_index("ix_candidate_moments_candidate_id", "candidate_moments", ["candidate_id"])

    op.create_table(
        "clip_matches",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("news_item_id", sa.Integer(), sa.ForeignKey("news_items.id"), nullable=False),
        sa.Column("candidate_id", sa.Integer(), sa.ForeignKey("candidates.id"), nullable=False),
        sa.Column("match_score", sa.Float(), nullable=False),
        sa.Column("match_reason", sa.String(), nullable=False),
        sa.Column("status", _enum("clipmatchstatus"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "news_item_id", "candidate_id", name="uq_clip_matches_news_candidate"
        ),
    )
    for column in ("org_id", "news_item_id", "candidate_id", "status"):
        op.create_index(f"ix_clip_matches_{column}", "clip_matches", [column])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("event_type", _enum("auditeventtype"), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    for column in ("org_id", "event_type", "created_at"):
        op.create_index(f"ix_audit_events_{column}", "audit_events", [column])


def downgrade() -> None:
    for table in (
        "audit_events",
        "clip_matches",
        "candidate_moments",
        "candidates",
        "transcript_segments",
        "transcripts",
        "youtube_videos",
        "query_runs",
        "query_definitions",
        "game_results",
        "odds_snapshots",
        "news_items",
        "source_fetch_runs",
        "sources",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        _enum(name).drop(bind, checkfirst=True)
