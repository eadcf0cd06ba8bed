"""
Unit tests for configuration defaults, the config loader and JSON logging
"""
import json
import logging

from app.config.loader import ConfigLoader
from app.config.settings import PlacesSettings, ProximitySettings, Settings, TrackingSettings
from app.core.logging import JsonFormatter


def test_proximity_defaults():
    config = ProximitySettings()

    assert config.staleness_minutes == 30
    assert config.fetch_batch_size == 100
    assert config.default_max_distance_km == 10.0
    assert config.place_count_radius_km == 0.1
    assert config.poll_interval_seconds == 30.0
    assert config.exclude_self_from_place_count is False


def test_tracking_and_places_defaults():
    tracking = TrackingSettings()
    places = PlacesSettings()

    assert tracking.enable_high_accuracy is True
    assert tracking.fix_timeout_seconds == 20.0
    assert tracking.maximum_age_seconds == 10.0
    assert tracking.clock_skew_seconds == 60.0
    assert tracking.idle_timeouts_before_stop == 3
    assert places.default_radius_m == 1500
    assert places.default_category == "tourist_attraction"


def test_environment_variables_override_groups(monkeypatch):
    monkeypatch.setenv("PROXIMITY_STALENESS_MINUTES", "15")
    monkeypatch.setenv("PLACES_API_KEY", "from-env")

    settings = Settings()

    assert settings.proximity.staleness_minutes == 15
    assert settings.places.api_key == "from-env"


def test_create_sample_env_file(tmp_path):
    output = tmp_path / "sample.env"

    path = ConfigLoader.create_sample_env_file("staging", str(output))
    content = output.read_text()

    assert path == str(output)
    assert "ENVIRONMENT=staging" in content
    assert "PROXIMITY_STALENESS_MINUTES=30" in content
    assert "TRACKING_MAXIMUM_AGE_SECONDS=10.0" in content


def test_validate_unknown_or_missing_environment(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert ConfigLoader.validate_environment_config("nowhere") is False
    assert ConfigLoader.validate_environment_config("staging") is False


def test_production_requires_jwt_secret(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env.production").write_text("ENVIRONMENT=production\n")

    assert ConfigLoader.validate_environment_config("production") is False

    monkeypatch.setenv("SECURITY_JWT_SECRET", "a-real-secret")
    assert ConfigLoader.validate_environment_config("production") is True


def test_json_formatter_includes_extra_fields():
    record = logging.makeLogRecord({
        "name": "app.test",
        "levelname": "INFO",
        "msg": "Started location tracking",
        "user_id": "u1",
    })

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Started location tracking"
    assert payload["logger"] == "app.test"
    assert payload["user_id"] == "u1"
    assert "args" not in payload
