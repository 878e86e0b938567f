from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from telegram import Update
from telegram.ext import (
    CallbackContext,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    filters,
)

from birthday_notifier.date_logic import (
    InvalidTimezoneError,
    local_delivery_time,
    next_occurrence,
    utc_now,
    validate_month_day,
    validate_timezone,
)
from birthday_notifier.lifecycle import PersonLifecycle
from birthday_notifier.models import Person
from birthday_notifier.outbox_store import OutboxStore
from birthday_notifier.people_store import (
    add_person,
    delete_person,
    load_roster,
    new_person_id,
    update_person,
)
from birthday_notifier.settings import Settings

LOGGER = logging.getLogger(__name__)

(
    STATE_ADD_FIRST_NAME,
    STATE_ADD_LAST_NAME,
    STATE_ADD_BIRTHDAY,
    STATE_ADD_TIMEZONE,
    STATE_ADD_CONFIRM,
    STATE_EDIT_SELECT,
    STATE_EDIT_FIRST_NAME,
    STATE_EDIT_LAST_NAME,
    STATE_EDIT_BIRTHDAY,
    STATE_EDIT_TIMEZONE,
    STATE_EDIT_CONFIRM,
) = range(11)

PENDING_ADD_KEY = "pending_add_person"
PENDING_EDIT_KEY = "pending_edit_person"


@dataclass(frozen=True)
class HandlerDependencies:
    settings: Settings
    store: OutboxStore
    lifecycle: PersonLifecycle


@dataclass(frozen=True)
class PersonListRow:
    name: str
    timezone: str
    next_local: datetime
    queued: bool


def is_authorized(update: Update, settings: Settings) -> bool:
    effective_user = update.effective_user
    effective_chat = update.effective_chat
    if effective_user is None or effective_chat is None:
        return False
    return (
        effective_user.id == settings.telegram_allowed_user_id
        and effective_chat.id == settings.telegram_allowed_chat_id
    )


async def _deny_unauthorized(update: Update) -> None:
    if update.effective_message:
        await update.effective_message.reply_text("This bot is restricted to its configured owner.")


def parse_birthday_text(raw_text: str) -> tuple[int, int, int | None]:
    value = raw_text.strip()

    full_match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", value)
    if full_match:
        year = int(full_match.group(1))
        month = int(full_match.group(2))
        day = int(full_match.group(3))
        date(year, month, day)
        return month, day, year

    short_match = re.fullmatch(r"(\d{2})-(\d{2})", value)
    if short_match:
        month = int(short_match.group(1))
        day = int(short_match.group(2))
        validate_month_day(month, day, allow_feb_29=True)
        return month, day, None

    raise ValueError("Birthday must use YYYY-MM-DD or MM-DD")


def parse_timezone_text(raw_text: str) -> str:
    value = raw_text.strip()
    if not value:
        raise ValueError("Timezone cannot be empty")
    try:
        validate_timezone(value)
    except InvalidTimezoneError as exc:
        raise ValueError(f"{exc} (use an IANA name like Europe/London)") from exc
    return value


def _render_help() -> str:
    return (
        "Commands:\n"
        "/add - Add a person with the interactive wizard\n"
        "/edit - Interactively edit an existing person\n"
        "/delete N - Remove person number N from /list order\n"
        "/list - Show people and their next birthday message\n"
        "/help - Show this help message\n"
        "/cancel - Cancel the active add/edit wizard\n\n"
        "Birthday format examples:\n"
        "- 1990-03-14\n"
        "- 03-14\n\n"
        "Messages go out at 09:00 in each person's timezone (e.g. America/New_York)."
    )


def _render_list_message(rows: list[PersonListRow]) -> str:
    lines = [f"Tracked people ({len(rows)})", "Sorted by next message:"]

    for index, row in enumerate(rows, start=1):
        status = "Queued" if row.queued else "Not queued yet"
        lines.append(f"{index}. {row.name}")
        lines.append(
            f"   Next {row.next_local.strftime('%Y-%m-%d %H:%M')} {row.timezone} | {status}"
        )
        lines.append("")

    return "\n".join(lines).rstrip()


def _format_birthday(month: int, day: int, year: int | None) -> str:
    if year is None:
        return f"{month:02d}-{day:02d}"
    return f"{year:04d}-{month:02d}-{day:02d}"


def _is_skip(value: str) -> bool:
    return value.strip().lower() in {"skip", "keep", "same"}


def _render_people_selection(header: str, people: list[Person]) -> str:
    lines = [header]
    for index, person in enumerate(people, start=1):
        lines.append(
            f"{index}. {person.full_name} | {_format_birthday(person.month, person.day, person.year)}"
            f" | {person.timezone}"
        )
    return "\n".join(lines)


def _person_from_pending(pending: dict[str, Any]) -> Person:
    return Person(
        person_id=str(pending["person_id"]),
        first_name=str(pending["first_name"]),
        last_name=str(pending["last_name"]),
        month=int(pending["month"]),
        day=int(pending["day"]),
        year=int(pending["year"]) if pending.get("year") is not None else None,
        timezone=str(pending["timezone"]),
    )


def _render_add_summary(pending: dict[str, Any]) -> str:
    person = _person_from_pending(pending)
    year_text = str(person.year) if person.year is not None else "(not set)"
    return (
        "Step 5/5: Confirm this entry:\n"
        f"Name: {person.full_name}\n"
        f"Birthday: {person.month:02d}-{person.day:02d}\n"
        f"Year: {year_text}\n"
        f"Timezone: {person.timezone}\n\n"
        "Reply with yes to save, or no to cancel."
    )


def _render_edit_summary(pending: dict[str, Any]) -> str:
    original_birthday = _format_birthday(
        int(pending["original_month"]),
        int(pending["original_day"]),
        int(pending["original_year"]) if pending["original_year"] is not None else None,
    )
    updated_birthday = _format_birthday(
        int(pending["month"]),
        int(pending["day"]),
        int(pending["year"]) if pending["year"] is not None else None,
    )

    return (
        "Step 6/6: Confirm these edits:\n"
        f"First name: {pending['original_first_name']} -> {pending['first_name']}\n"
        f"Last name: {pending['original_last_name']} -> {pending['last_name']}\n"
        f"Birthday: {original_birthday} -> {updated_birthday}\n"
        f"Timezone: {pending['original_timezone']} -> {pending['timezone']}\n\n"
        "Reply with yes to save, or no to cancel."
    )


def build_list_rows(people: list[Person], store: OutboxStore, leap_day_rule: str, now: datetime) -> list[PersonListRow]:
    rows: list[PersonListRow] = []
    for person in people:
        pending = store.pending_for(person.person_id)
        if pending is not None:
            scheduled_at = pending.scheduled_at
        else:
            scheduled_at = next_occurrence(person.month, person.day, person.timezone, now, leap_day_rule)
        rows.append(
            PersonListRow(
                name=person.full_name,
                timezone=person.timezone,
                next_local=local_delivery_time(scheduled_at, person.timezone),
                queued=pending is not None,
            )
        )

    rows.sort(key=lambda row: (row.next_local, row.name.lower()))
    return rows


async def help_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return
    await update.effective_message.reply_text(_render_help())


async def list_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return

    roster = load_roster(settings.people_path)
    if not roster.people:
        await update.effective_message.reply_text("No people are currently tracked.")
        return

    rows = build_list_rows(roster.people, deps.store, roster.leap_day_rule, utc_now())
    await update.effective_message.reply_text(_render_list_message(rows))


async def delete_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return

    roster = load_roster(settings.people_path)
    if not roster.people:
        await update.effective_message.reply_text("No people are currently tracked.")
        return

    args = context.args or []
    if len(args) != 1 or not args[0].isdigit():
        await update.effective_message.reply_text(
            _render_people_selection("Usage: /delete N, where N is one of:", roster.people)
        )
        return

    selected = int(args[0])
    if selected < 1 or selected > len(roster.people):
        await update.effective_message.reply_text(f"Entry must be between 1 and {len(roster.people)}.")
        return

    removed = delete_person(settings.people_path, roster.people[selected - 1].person_id)
    if removed is None:
        await update.effective_message.reply_text("That person was already removed.")
        return

    deps.lifecycle.on_person_deleted(removed.person_id)
    await update.effective_message.reply_text(f"Removed {removed.full_name}.")
    LOGGER.info("Deleted person %s", removed.person_id)


async def add_start(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    context.user_data[PENDING_ADD_KEY] = {}
    await update.effective_message.reply_text(
        "Add person wizard started.\nStep 1/5: Send the person's first name."
    )
    return STATE_ADD_FIRST_NAME


async def add_first_name(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    first_name = (update.effective_message.text or "").strip()
    if not first_name:
        await update.effective_message.reply_text("First name cannot be empty. Please send a name.")
        return STATE_ADD_FIRST_NAME

    context.user_data[PENDING_ADD_KEY] = {"first_name": first_name}
    await update.effective_message.reply_text("Step 2/5: Send the person's last name.")
    return STATE_ADD_LAST_NAME


async def add_last_name(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    last_name = (update.effective_message.text or "").strip()
    if not last_name:
        await update.effective_message.reply_text("Last name cannot be empty. Please send a name.")
        return STATE_ADD_LAST_NAME

    pending = context.user_data.get(PENDING_ADD_KEY, {})
    pending["last_name"] = last_name
    context.user_data[PENDING_ADD_KEY] = pending
    await update.effective_message.reply_text("Step 3/5: Send birthday as YYYY-MM-DD or MM-DD.")
    return STATE_ADD_BIRTHDAY


async def add_birthday(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    raw_text = update.effective_message.text or ""

    try:
        month, day, year = parse_birthday_text(raw_text)
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}. Please send YYYY-MM-DD or MM-DD.")
        return STATE_ADD_BIRTHDAY

    pending = context.user_data.get(PENDING_ADD_KEY, {})
    pending.update({"month": month, "day": day, "year": year})
    context.user_data[PENDING_ADD_KEY] = pending

    await update.effective_message.reply_text(
        "Step 4/5: Send the person's timezone (e.g., America/New_York)."
    )
    return STATE_ADD_TIMEZONE


async def add_timezone(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    try:
        tz_name = parse_timezone_text(update.effective_message.text or "")
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}. Please send a timezone.")
        return STATE_ADD_TIMEZONE

    pending = context.user_data.get(PENDING_ADD_KEY, {})
    pending["timezone"] = tz_name
    pending["person_id"] = new_person_id()
    context.user_data[PENDING_ADD_KEY] = pending

    await update.effective_message.reply_text(_render_add_summary(pending))
    return STATE_ADD_CONFIRM


async def add_confirm(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    decision = (update.effective_message.text or "").strip().lower()
    if decision not in {"yes", "y", "no", "n"}:
        await update.effective_message.reply_text("Please reply with yes or no.")
        return STATE_ADD_CONFIRM

    if decision in {"no", "n"}:
        context.user_data.pop(PENDING_ADD_KEY, None)
        await update.effective_message.reply_text("Canceled. No changes were made.")
        return ConversationHandler.END

    pending = context.user_data.pop(PENDING_ADD_KEY, {})
    try:
        person = add_person(settings.people_path, _person_from_pending(pending))
    except ValueError as exc:
        await update.effective_message.reply_text(f"Could not save: {exc}. Send /add to start again.")
        return ConversationHandler.END

    roster = load_roster(settings.people_path)
    planned = deps.lifecycle.on_person_created(person, leap_day_rule=roster.leap_day_rule)

    local = local_delivery_time(planned.scheduled_at, person.timezone)
    await update.effective_message.reply_text(
        f"Saved. Next message: {local.strftime('%Y-%m-%d %H:%M')} {person.timezone}."
    )
    LOGGER.info("Added person %s", person.person_id)
    return ConversationHandler.END


async def edit_start(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    roster = load_roster(settings.people_path)
    if not roster.people:
        await update.effective_message.reply_text("No people are currently tracked.")
        return ConversationHandler.END

    context.user_data[PENDING_EDIT_KEY] = {}
    await update.effective_message.reply_text(
        _render_people_selection(
            "Edit person wizard started.\nStep 1/6: Reply with the number of the entry to edit:",
            roster.people,
        )
    )
    return STATE_EDIT_SELECT


async def edit_select(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    raw_text = (update.effective_message.text or "").strip()
    if not raw_text.isdigit():
        await update.effective_message.reply_text("Please send the entry number shown in the list.")
        return STATE_EDIT_SELECT

    selected = int(raw_text)
    roster = load_roster(settings.people_path)
    if selected < 1 or selected > len(roster.people):
        await update.effective_message.reply_text(f"Entry must be between 1 and {len(roster.people)}.")
        return STATE_EDIT_SELECT

    person = roster.people[selected - 1]
    pending: dict[str, Any] = {
        "person_id": person.person_id,
        "original_first_name": person.first_name,
        "original_last_name": person.last_name,
        "original_month": person.month,
        "original_day": person.day,
        "original_year": person.year,
        "original_timezone": person.timezone,
        "first_name": person.first_name,
        "last_name": person.last_name,
        "month": person.month,
        "day": person.day,
        "year": person.year,
        "timezone": person.timezone,
    }
    context.user_data[PENDING_EDIT_KEY] = pending

    await update.effective_message.reply_text(
        f"Step 2/6: Send a new first name, or skip to keep \"{person.first_name}\"."
    )
    return STATE_EDIT_FIRST_NAME


def _pending_edit(context: CallbackContext) -> dict[str, Any] | None:
    pending = context.user_data.get(PENDING_EDIT_KEY)
    if not isinstance(pending, dict) or "person_id" not in pending:
        return None
    return pending


async def _expired_edit(update: Update) -> int:
    await update.effective_message.reply_text("Edit session expired. Send /edit to start again.")
    return ConversationHandler.END


async def edit_first_name(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    pending = _pending_edit(context)
    if pending is None:
        return await _expired_edit(update)

    raw_text = (update.effective_message.text or "").strip()
    if not _is_skip(raw_text):
        if not raw_text:
            await update.effective_message.reply_text("First name cannot be empty. Send a name or skip.")
            return STATE_EDIT_FIRST_NAME
        pending["first_name"] = raw_text

    context.user_data[PENDING_EDIT_KEY] = pending
    await update.effective_message.reply_text(
        f"Step 3/6: Send a new last name, or skip to keep \"{pending['last_name']}\"."
    )
    return STATE_EDIT_LAST_NAME


async def edit_last_name(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    pending = _pending_edit(context)
    if pending is None:
        return await _expired_edit(update)

    raw_text = (update.effective_message.text or "").strip()
    if not _is_skip(raw_text):
        if not raw_text:
            await update.effective_message.reply_text("Last name cannot be empty. Send a name or skip.")
            return STATE_EDIT_LAST_NAME
        pending["last_name"] = raw_text

    current_birthday = _format_birthday(
        int(pending["month"]),
        int(pending["day"]),
        int(pending["year"]) if pending["year"] is not None else None,
    )
    context.user_data[PENDING_EDIT_KEY] = pending
    await update.effective_message.reply_text(
        "Step 4/6: Send a new birthday as YYYY-MM-DD or MM-DD,\n"
        f"or skip to keep {current_birthday}."
    )
    return STATE_EDIT_BIRTHDAY


async def edit_birthday(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    pending = _pending_edit(context)
    if pending is None:
        return await _expired_edit(update)

    raw_text = (update.effective_message.text or "").strip()
    if not _is_skip(raw_text):
        try:
            month, day, year = parse_birthday_text(raw_text)
        except ValueError as exc:
            await update.effective_message.reply_text(
                f"{exc}. Please send YYYY-MM-DD or MM-DD, or skip."
            )
            return STATE_EDIT_BIRTHDAY
        pending["month"] = month
        pending["day"] = day
        pending["year"] = year

    context.user_data[PENDING_EDIT_KEY] = pending
    await update.effective_message.reply_text(
        f"Step 5/6: Send a new timezone, or skip to keep {pending['timezone']}."
    )
    return STATE_EDIT_TIMEZONE


async def edit_timezone(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    pending = _pending_edit(context)
    if pending is None:
        return await _expired_edit(update)

    raw_text = (update.effective_message.text or "").strip()
    if not _is_skip(raw_text):
        try:
            pending["timezone"] = parse_timezone_text(raw_text)
        except ValueError as exc:
            await update.effective_message.reply_text(f"{exc}. Send a timezone, or skip.")
            return STATE_EDIT_TIMEZONE

    context.user_data[PENDING_EDIT_KEY] = pending
    await update.effective_message.reply_text(_render_edit_summary(pending))
    return STATE_EDIT_CONFIRM


async def edit_confirm(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    pending = _pending_edit(context)
    if pending is None:
        return await _expired_edit(update)

    decision = (update.effective_message.text or "").strip().lower()
    if decision not in {"yes", "y", "no", "n"}:
        await update.effective_message.reply_text("Please reply with yes or no.")
        return STATE_EDIT_CONFIRM

    context.user_data.pop(PENDING_EDIT_KEY, None)
    if decision in {"no", "n"}:
        await update.effective_message.reply_text("Canceled. No changes were made.")
        return ConversationHandler.END

    try:
        person = update_person(settings.people_path, _person_from_pending(pending))
    except KeyError:
        await update.effective_message.reply_text(
            "Could not save because that person was removed. Send /edit and try again."
        )
        return ConversationHandler.END
    except ValueError as exc:
        await update.effective_message.reply_text(f"Could not save: {exc}. Send /edit to start again.")
        return ConversationHandler.END

    roster = load_roster(settings.people_path)
    planned = deps.lifecycle.on_person_updated(person, leap_day_rule=roster.leap_day_rule)

    local = local_delivery_time(planned.scheduled_at, person.timezone)
    await update.effective_message.reply_text(
        f"Person updated. Next message: {local.strftime('%Y-%m-%d %H:%M')} {person.timezone}."
    )
    LOGGER.info("Updated person %s", person.person_id)
    return ConversationHandler.END


async def cancel_command(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    context.user_data.pop(PENDING_ADD_KEY, None)
    context.user_data.pop(PENDING_EDIT_KEY, None)
    await update.effective_message.reply_text("Wizard canceled.")
    return ConversationHandler.END


def build_handlers() -> list:
    text_only = filters.TEXT & ~filters.COMMAND

    add_conversation = ConversationHandler(
        entry_points=[CommandHandler("add", add_start)],
        states={
            STATE_ADD_FIRST_NAME: [MessageHandler(text_only, add_first_name)],
            STATE_ADD_LAST_NAME: [MessageHandler(text_only, add_last_name)],
            STATE_ADD_BIRTHDAY: [MessageHandler(text_only, add_birthday)],
            STATE_ADD_TIMEZONE: [MessageHandler(text_only, add_timezone)],
            STATE_ADD_CONFIRM: [MessageHandler(text_only, add_confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="add_person_conversation",
        persistent=False,
    )

    edit_conversation = ConversationHandler(
        entry_points=[CommandHandler("edit", edit_start)],
        states={
            STATE_EDIT_SELECT: [MessageHandler(text_only, edit_select)],
            STATE_EDIT_FIRST_NAME: [MessageHandler(text_only, edit_first_name)],
            STATE_EDIT_LAST_NAME: [MessageHandler(text_only, edit_last_name)],
            STATE_EDIT_BIRTHDAY: [MessageHandler(text_only, edit_birthday)],
            STATE_EDIT_TIMEZONE: [MessageHandler(text_only, edit_timezone)],
            STATE_EDIT_CONFIRM: [MessageHandler(text_only, edit_confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="edit_person_conversation",
        persistent=False,
    )

    return [
        CommandHandler("help", help_command),
        CommandHandler("list", list_command),
        CommandHandler("delete", delete_command),
        CommandHandler("cancel", cancel_command),
        add_conversation,
        edit_conversation,
    ]
