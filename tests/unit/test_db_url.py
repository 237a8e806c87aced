"""Tests for DATABASE_URL normalization."""

import ssl

import pytest

from app.utils.db_url import describe_database_url, prepare_asyncpg_connection


class TestPrepareAsyncpgConnection:
    @pytest.mark.parametrize(
        "url",
        [
            "postgres://u:p@db.example.com:5432/clips",
            "postgresql://u:p@db.example.com:5432/clips",
            "postgresql+asyncpg://u:p@db.example.com:5432/clips",
        ],
    )
    def test_selects_asyncpg_driver(self, url):
        cleaned, connect_args = prepare_asyncpg_connection(url)

        assert cleaned == "postgresql+asyncpg://u:p@db.example.com:5432/clips"
        assert connect_args == {}

    def test_moves_libpq_args_out_of_query(self):
        cleaned, connect_args = prepare_asyncpg_connection(
            "postgresql://u:p@host/clips?sslmode=require&channel_binding=require&application_name=scout"
        )

        assert cleaned == "postgresql+asyncpg://u:p@host/clips?application_name=scout"
        context = connect_args["ssl"]
        assert isinstance(context, ssl.SSLContext)
        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_NONE

    def test_disable_turns_ssl_off(self):
        cleaned, connect_args = prepare_asyncpg_connection("postgresql://u@host/clips?sslmode=disable")

        assert cleaned == "postgresql+asyncpg://u@host/clips"
        assert connect_args == {"ssl": False}

    def test_prefer_leaves_driver_default(self):
        _, connect_args = prepare_asyncpg_connection("postgresql://u@host/clips?sslmode=prefer")

        assert connect_args == {}

    def test_verify_full_checks_hostname(self):
        _, connect_args = prepare_asyncpg_connection("postgresql://u@host/clips?sslmode=verify-full")

        assert connect_args["ssl"].check_hostname is True


class TestDescribeDatabaseUrl:
    def test_omits_password(self):
        described = describe_database_url("postgresql+asyncpg://scout:hunter2@db:5432/clips")

        assert described == "postgresql+asyncpg://scout@db:5432/clips"
        assert "hunter2" not in described

    def test_unparseable(self):
        assert describe_database_url("not a url") == "<unparseable database url>"
