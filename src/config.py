from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Load <repo>/.env and accept env keys in any case
    _env_file = Path(__file__).resolve().parent.parent / ".env"
    model_config = SettingsConfigDict(env_file=str(_env_file), extra="ignore", case_sensitive=False)

    app_name: str = "WindHub GRIB2 server"
    app_version: str = "0.1.0"
    debug: bool = False
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    port: int = 8000

    # GFS upstream
    harvest_enabled: bool = Field(default=True, description="Run the background GFS harvester on startup.")
    gfs_base_url: str = Field(
        default="https://nomads.ncep.noaa.gov/cgi-bin/filter_gfs_1p00.pl",
        description="NOMADS grib filter endpoint for the GFS 1.0 degree product.",
    )
    gfs_user_agent: str = Field(
        default="WindHub/0.1.0 (support@example.com)",
        description="User-Agent sent to NOMADS.",
    )
    gfs_request_timeout: float = Field(default=60.0, ge=1.0, description="Timeout in seconds for GRIB downloads")
    gfs_left_lon: float = Field(default=0.0, ge=-180.0, le=360.0)
    gfs_right_lon: float = Field(default=360.0, ge=-180.0, le=360.0)
    gfs_top_lat: float = Field(default=90.0, ge=-90.0, le=90.0)
    gfs_bottom_lat: float = Field(default=-90.0, ge=-90.0, le=90.0)

    # Snapshot storage
    data_dir: str = Field(default="data", description="Root directory for raw and converted snapshots.")
    raw_dir_name: str = Field(default="grib-data", description="Sub-directory holding transient GRIB2 downloads.")
    json_dir_name: str = Field(default="json-data", description="Sub-directory holding converted JSON snapshots.")

    # Harvest schedule
    grid_interval_hours: int = Field(default=6, ge=1, le=24, description="Spacing of GFS model runs in hours.")
    harvest_horizon_days: int = Field(
        default=30,
        ge=1,
        description="How far back the harvester and resolver look before giving up.",
    )
    harvest_poll_minutes: float = Field(default=15.0, gt=0.0, description="Spacing between harvest cycles.")
    harvest_history_limit: int = Field(
        default=200,
        ge=10,
        description="Max number of in-memory harvest events retained for diagnostics.",
    )
    harvest_event_log: str | None = Field(
        default=None,
        description="Optional path to persist harvest events as JSONL. Leave blank to disable persistence.",
    )

    # grib2json converter
    converter_command: str = Field(
        default="converter/bin/grib2json",
        description="Path to the grib2json executable.",
    )
    converter_timeout: float = Field(default=300.0, ge=1.0, description="Seconds before a conversion is abandoned.")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def normalize_cors(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                import json
                return json.loads(s)
            if s in ("", "*"):
                return ["*"]
            return [p.strip() for p in s.split(",")]
        return v

    @field_validator("harvest_event_log", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

settings = Settings()
