"""Tests for settings validation at startup."""

import pytest

from sessionbook.config import Settings


def _settings(**overrides):
    base = dict(admin_api_key="k", seed_data_path="data/sample_provider.jsonl")
    base.update(overrides)
    return Settings(_env_file=None, **base)


class TestValidateStartup:
    def test_defaults_are_valid(self):
        assert _settings().validate_startup() == []

    def test_unknown_timezone(self):
        with pytest.raises(ValueError, match="CALENDAR_TIMEZONE"):
            _settings(calendar_timezone="Nowhere/Special").validate_startup()

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError, match="COMMIT_MAX_ATTEMPTS"):
            _settings(commit_max_attempts=0).validate_startup()

    def test_short_horizon_warns(self):
        warnings = _settings(booking_horizon_days=3).validate_startup()
        assert any("BOOKING_HORIZON_DAYS" in w for w in warnings)

    def test_missing_admin_key_in_production(self):
        warnings = _settings(admin_api_key="").validate_startup()
        assert any("locked in production" in w for w in warnings)

    def test_missing_admin_key_in_debug(self):
        warnings = _settings(admin_api_key="", debug=True).validate_startup()
        assert any("open (DEBUG=true)" in w for w in warnings)

    def test_missing_seed_warns(self):
        warnings = _settings(seed_data_path="").validate_startup()
        assert any("SEED_DATA_PATH" in w for w in warnings)

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("BOOKING_HORIZON_DAYS", "42")
        monkeypatch.setenv("CALENDAR_TIMEZONE", "America/New_York")
        config = Settings(_env_file=None)
        assert config.booking_horizon_days == 42
        assert config.calendar_timezone == "America/New_York"

    def test_provider_keys_from_json_env(self, monkeypatch):
        monkeypatch.setenv("PROVIDER_FEED_KEYS", '{"t1": "k-t1", "t2": "k-t2"}')
        config = Settings(_env_file=None)
        assert config.provider_feed_keys == {"t1": "k-t1", "t2": "k-t2"}

    def test_provider_keys_without_admin_key(self):
        warnings = _settings(admin_api_key="", provider_feed_keys={"t1": "k"}).validate_startup()
        assert warnings == ["ADMIN_API_KEY not set. Only provider-scoped keys can read bookings."]

    def test_blank_provider_key_warns(self):
        warnings = _settings(provider_feed_keys={"t1": "", "t2": "k"}).validate_startup()
        assert any("empty keys for t1" in w for w in warnings)
