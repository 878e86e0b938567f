from pathlib import Path

import pytest

from birthday_notifier.settings import load_settings


@pytest.fixture
def required_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setenv("TELEGRAM_ALLOWED_USER_ID", "111")
    monkeypatch.setenv("TELEGRAM_ALLOWED_CHAT_ID", "222")
    monkeypatch.setenv("WEBHOOK_URL", "https://hooks.example.test/birthday")
    for name in (
        "PEOPLE_PATH",
        "OUTBOX_DB_PATH",
        "WEBHOOK_TIMEOUT_SECONDS",
        "DELIVERY_INTERVAL_SECONDS",
        "RECONCILE_INTERVAL_SECONDS",
        "DELIVERY_BATCH_SIZE",
        "CASCADE_DELETE",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(required_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    required_env.chdir(tmp_path)

    settings = load_settings()

    assert settings.people_path == tmp_path.resolve() / "config" / "people.toml"
    assert settings.outbox_db_path == tmp_path.resolve() / "data" / "outbox.sqlite3"
    assert settings.delivery_interval_seconds == 5.0
    assert settings.reconcile_interval_seconds == 60.0
    assert settings.delivery_batch_size == 100
    assert settings.cascade_delete is False


def test_overrides(required_env: pytest.MonkeyPatch) -> None:
    required_env.setenv("DELIVERY_BATCH_SIZE", "25")
    required_env.setenv("WEBHOOK_TIMEOUT_SECONDS", "2.5")
    required_env.setenv("CASCADE_DELETE", "yes")

    settings = load_settings()

    assert settings.delivery_batch_size == 25
    assert settings.webhook_timeout_seconds == 2.5
    assert settings.cascade_delete is True


def test_missing_webhook_url(required_env: pytest.MonkeyPatch) -> None:
    required_env.delenv("WEBHOOK_URL")

    with pytest.raises(ValueError, match="WEBHOOK_URL"):
        load_settings()


def test_non_positive_interval_rejected(required_env: pytest.MonkeyPatch) -> None:
    required_env.setenv("DELIVERY_INTERVAL_SECONDS", "0")

    with pytest.raises(ValueError, match="DELIVERY_INTERVAL_SECONDS"):
        load_settings()


@pytest.mark.parametrize("raw", ["0.5", "abc", "-3"])
def test_batch_size_must_be_positive_whole_number(required_env: pytest.MonkeyPatch, raw: str) -> None:
    required_env.setenv("DELIVERY_BATCH_SIZE", raw)

    with pytest.raises(ValueError, match="DELIVERY_BATCH_SIZE"):
        load_settings()
