"""Environment-driven settings shared by the API, the CLI and the domain layer."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

SCALE_MIN = 0.5
SCALE_MAX = 64.0


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    max_upload_mb: int = 300
    pixel_density: float = 1.0
    heartbeat_interval_sec: float = 0.2
    heartbeat_step: int = 10
    heartbeat_cap: int = 90
    webp_quality: int = 80
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080
    reload: bool = False


def load_settings() -> Settings:
    return Settings(
        data_dir=Path(os.getenv("DATA_DIR", "./data")).expanduser().resolve(),
        max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", "300")),
        pixel_density=float(os.getenv("PIXEL_DENSITY", "1.0")),
        heartbeat_interval_sec=float(os.getenv("HEARTBEAT_INTERVAL_SEC", "0.2")),
        heartbeat_step=int(os.getenv("HEARTBEAT_STEP", "10")),
        heartbeat_cap=int(os.getenv("HEARTBEAT_CAP", "90")),
        webp_quality=int(os.getenv("WEBP_QUALITY", "80")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        reload=_env_flag("RELOAD", "false"),
    )


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
