from __future__ import annotations

import pytest
from pydantic import ValidationError

from relay.core.config import Settings


def test_defaults_match_collect_contract() -> None:
    settings = Settings(_env_file=None)

    assert settings.collect_batch_size == 50
    assert settings.collect_interval_seconds == 300
    assert settings.collect_timeout_seconds == 1.0
    assert settings.collect_max_redirects == 5
    assert settings.collect_configured is False


def test_admin_prefixes_are_always_excluded() -> None:
    settings = Settings(_env_file=None, api_v1_prefix="/v2", collect_excluded_prefixes=["/internal"])

    assert settings.collect_excluded_prefixes == ["/internal", "/admin", "/v2/admin"]


def test_list_fields_accept_comma_separated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_KEYS", "alpha, beta")
    monkeypatch.setenv("ALLOWED_ORIGINS", '["https://a.test"]')
    monkeypatch.setenv("PROJECT_ID", "proj-9")
    monkeypatch.setenv("SITE_ID", "site-9")

    settings = Settings(_env_file=None)

    assert settings.api_keys == ["alpha", "beta"]
    assert settings.allowed_origins == ["https://a.test"]
    assert settings.collect_configured is True


@pytest.mark.parametrize("field", ["collect_batch_size", "collect_interval_seconds", "collect_timeout_seconds"])
def test_non_positive_collect_values_are_rejected(field: str) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})
