from __future__ import annotations

import logging
from pathlib import Path

from telegram.ext import Application

from birthday_notifier.bot_handlers import HandlerDependencies, build_handlers
from birthday_notifier.delivery import DeliveryLoop, WebhookSink
from birthday_notifier.jobs import RepeatingTask
from birthday_notifier.lifecycle import PersonLifecycle
from birthday_notifier.outbox_store import OutboxStore
from birthday_notifier.people_store import ensure_default_roster, load_roster
from birthday_notifier.planner import EnqueuePlanner
from birthday_notifier.reconciler import BootstrapReconciler
from birthday_notifier.settings import load_settings

LOGGER = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO; the delivery loop already reports outcomes.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


async def start_background_tasks(application: Application) -> None:
    for task in application.bot_data["tasks"]:
        task.start(application.job_queue)


async def stop_background_tasks(application: Application) -> None:
    sink: WebhookSink = application.bot_data["webhook_sink"]
    try:
        for task in application.bot_data["tasks"]:
            task.stop()
    finally:
        await sink.aclose()


def main() -> None:
    configure_logging()

    settings = load_settings()
    _ensure_parent(settings.people_path)
    _ensure_parent(settings.outbox_db_path)

    ensure_default_roster(settings.people_path)
    roster = load_roster(settings.people_path)

    store = OutboxStore(settings.outbox_db_path)
    planner = EnqueuePlanner(store, leap_day_rule=roster.leap_day_rule)
    lifecycle = PersonLifecycle(store=store, planner=planner, cascade_delete=settings.cascade_delete)

    sink = WebhookSink(settings.webhook_url, timeout=settings.webhook_timeout_seconds)
    delivery_loop = DeliveryLoop(store=store, sink=sink, batch_size=settings.delivery_batch_size)
    reconciler = BootstrapReconciler(people_path=settings.people_path, planner=planner)

    application = Application.builder().token(settings.telegram_bot_token).build()
    application.bot_data["handler_deps"] = HandlerDependencies(
        settings=settings,
        store=store,
        lifecycle=lifecycle,
    )
    application.bot_data["webhook_sink"] = sink
    application.bot_data["tasks"] = [
        RepeatingTask(
            "birthday-reconciler",
            reconciler.run_once,
            interval_seconds=settings.reconcile_interval_seconds,
        ),
        RepeatingTask(
            "birthday-delivery",
            delivery_loop.run_once,
            interval_seconds=settings.delivery_interval_seconds,
        ),
    ]

    for handler in build_handlers():
        application.add_handler(handler)

    application.post_init = start_background_tasks
    application.post_stop = stop_background_tasks
    LOGGER.info("Starting birthday notifier with %s tracked people", len(roster.people))
    application.run_polling()


if __name__ == "__main__":
    main()
