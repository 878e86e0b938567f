from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    telegram_allowed_user_id: int
    telegram_allowed_chat_id: int
    webhook_url: str
    people_path: Path
    outbox_db_path: Path
    webhook_timeout_seconds: float = 10.0
    delivery_interval_seconds: float = 5.0
    reconcile_interval_seconds: float = 60.0
    delivery_batch_size: int = 100
    cascade_delete: bool = False


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _positive_number_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return value


def _positive_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a whole number") from exc
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return value


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be true or false")


def load_settings() -> Settings:
    root = Path.cwd()

    token = _required_env("TELEGRAM_BOT_TOKEN")
    allowed_user_id = int(_required_env("TELEGRAM_ALLOWED_USER_ID"))
    allowed_chat_id = int(_required_env("TELEGRAM_ALLOWED_CHAT_ID"))
    webhook_url = _required_env("WEBHOOK_URL")

    people_path = Path(os.getenv("PEOPLE_PATH", root / "config" / "people.toml"))
    outbox_db_path = Path(os.getenv("OUTBOX_DB_PATH", root / "data" / "outbox.sqlite3"))

    return Settings(
        telegram_bot_token=token,
        telegram_allowed_user_id=allowed_user_id,
        telegram_allowed_chat_id=allowed_chat_id,
        webhook_url=webhook_url,
        people_path=people_path,
        outbox_db_path=outbox_db_path,
        webhook_timeout_seconds=_positive_number_env("WEBHOOK_TIMEOUT_SECONDS", 10.0),
        delivery_interval_seconds=_positive_number_env("DELIVERY_INTERVAL_SECONDS", 5.0),
        reconcile_interval_seconds=_positive_number_env("RECONCILE_INTERVAL_SECONDS", 60.0),
        delivery_batch_size=_positive_int_env("DELIVERY_BATCH_SIZE", 100),
        cascade_delete=_bool_env("CASCADE_DELETE", False),
    )
