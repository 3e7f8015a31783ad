from config import Settings


def test_settings_defaults():
    settings = Settings()
    assert settings.app_name == "WindHub GRIB2 server"
    assert settings.app_version == "0.1.0"
    assert settings.grid_interval_hours == 6
    assert settings.harvest_horizon_days == 30
    assert settings.harvest_poll_minutes == 15.0
    assert settings.raw_dir_name == "grib-data"
    assert settings.json_dir_name == "json-data"
    assert settings.gfs_base_url.endswith("filter_gfs_1p00.pl")


def test_settings_normalizes_cors_from_string():
    settings = Settings(cors_origins="http://example.com, http://localhost")
    assert settings.cors_origins == ["http://example.com", "http://localhost"]
    assert Settings(cors_origins="*").cors_origins == ["*"]


def test_settings_handles_case_insensitive_env(monkeypatch):
    monkeypatch.setenv("harvest_poll_minutes", "5")
    monkeypatch.setenv("DATA_DIR", "/srv/windhub")
    settings = Settings()
    assert settings.harvest_poll_minutes == 5.0
    assert settings.data_dir == "/srv/windhub"


def test_settings_blank_event_log_disables_persistence(monkeypatch):
    monkeypatch.setenv("HARVEST_EVENT_LOG", "  ")
    assert Settings().harvest_event_log is None
