"""Unit tests for the cron endpoint's bearer-secret guard."""

import pytest
from fastapi import HTTPException

from app.config import settings
from app.routes.cron import require_cron_secret


class TestRequireCronSecret:
    """The guard only applies when a secret is configured."""

    def test_open_when_no_secret_configured(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "cron_secret", None)
        require_cron_secret(None)
        require_cron_secret("Bearer anything")

    def test_accepts_matching_bearer(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "cron_secret", "s3cret")
        require_cron_secret("Bearer s3cret")

    @pytest.mark.parametrize("header", [None, "", "s3cret", "Bearer wrong", "bearer s3cret"])
    def test_rejects_missing_or_wrong_header(
        self, monkeypatch: pytest.MonkeyPatch, header
    ) -> None:
        monkeypatch.setattr(settings, "cron_secret", "s3cret")
        with pytest.raises(HTTPException) as exc_info:
            require_cron_secret(header)
        assert exc_info.value.status_code == 401
