from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Event journal
    db_path: str = os.getenv("SETIMG_DB_PATH", os.path.join("~", ".setimg", "events.db"))
    enable_event_log: bool = _env_bool("SETIMG_EVENT_LOG", True)

    # Rollout watch
    poll_interval_s: int = _env_int("SETIMG_POLL_INTERVAL_S", 5)
    watch_timeout_s: int = _env_int("SETIMG_WATCH_TIMEOUT_S", 300)

    # Registry lookups
    registry_timeout_s: int = _env_int("SETIMG_REGISTRY_TIMEOUT_S", 10)
    max_concurrency: int = _env_int("SETIMG_MAX_CONCURRENCY", 10)
    max_enrich_tags: int = _env_int("SETIMG_MAX_ENRICH_TAGS", 50)
    max_listed_tags: int = _env_int("SETIMG_MAX_LISTED_TAGS", 20)
    ecr_max_images: int = _env_int("SETIMG_ECR_MAX_IMAGES", 100)

    # Email alerting (optional)
    enable_email: bool = _env_bool("SETIMG_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("SETIMG_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("SETIMG_SMTP_PORT", 587)
    smtp_user: str | None = os.getenv("SETIMG_SMTP_USER")
    smtp_password: str | None = os.getenv("SETIMG_SMTP_PASSWORD")
    email_from: str | None = os.getenv("SETIMG_EMAIL_FROM")
    email_to: str | None = os.getenv("SETIMG_EMAIL_TO")


settings = Settings()
