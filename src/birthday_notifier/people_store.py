from __future__ import annotations

import os
import tempfile
import tomllib
import uuid
from datetime import date
from pathlib import Path

from birthday_notifier.date_logic import (
    ALLOWED_LEAP_DAY_RULES,
    InvalidBirthdayError,
    InvalidTimezoneError,
    validate_month_day,
    validate_timezone,
)
from birthday_notifier.models import DEFAULT_LEAP_DAY_RULE, Person, Roster


def _toml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def new_person_id() -> str:
    return str(uuid.uuid4())


def validate_person(person: Person) -> Person:
    person_id = person.person_id.strip()
    if not person_id:
        raise ValueError("person id must not be empty")

    first_name = person.first_name.strip()
    last_name = person.last_name.strip()
    if not first_name or not last_name:
        raise ValueError("first_name and last_name must not be empty")

    try:
        validate_month_day(person.month, person.day, allow_feb_29=True)
    except InvalidBirthdayError as exc:
        raise ValueError(str(exc)) from exc

    if person.year is not None:
        try:
            date(person.year, person.month, person.day)
        except ValueError as exc:
            raise ValueError(str(exc)) from exc

    try:
        validate_timezone(person.timezone)
    except InvalidTimezoneError as exc:
        raise ValueError(str(exc)) from exc

    return Person(
        person_id=person_id,
        first_name=first_name,
        last_name=last_name,
        month=int(person.month),
        day=int(person.day),
        year=int(person.year) if person.year is not None else None,
        timezone=person.timezone.strip(),
    )


def validate_roster(roster: Roster) -> Roster:
    leap_day_rule = roster.leap_day_rule.strip().lower()
    if leap_day_rule not in ALLOWED_LEAP_DAY_RULES:
        raise ValueError(f"leap_day_rule must be one of {sorted(ALLOWED_LEAP_DAY_RULES)}")

    validated: list[Person] = []
    seen_ids: set[str] = set()
    for person in roster.people:
        checked = validate_person(person)
        if checked.person_id in seen_ids:
            raise ValueError(f"Duplicate person id: {checked.person_id}")
        seen_ids.add(checked.person_id)
        validated.append(checked)

    return Roster(leap_day_rule=leap_day_rule, people=validated)


def _read_roster(path: Path) -> tuple[Roster, bool]:
    """Parse the roster file; the flag reports entries that had no id yet."""
    if not path.exists():
        raise FileNotFoundError(f"People file not found: {path}")

    with path.open("rb") as file_obj:
        data = tomllib.load(file_obj)

    people: list[Person] = []
    assigned = False
    for row in data.get("people", []):
        person_id = str(row.get("id", "")).strip()
        if not person_id:
            person_id = new_person_id()
            assigned = True
        people.append(
            Person(
                person_id=person_id,
                first_name=str(row.get("first_name", "")),
                last_name=str(row.get("last_name", "")),
                month=int(row.get("month", 0)),
                day=int(row.get("day", 0)),
                year=int(row["year"]) if row.get("year") is not None else None,
                timezone=str(row.get("timezone", "")),
            )
        )

    roster = Roster(
        leap_day_rule=str(data.get("leap_day_rule", DEFAULT_LEAP_DAY_RULE)),
        people=people,
    )
    return validate_roster(roster), assigned


def load_roster(path: Path) -> Roster:
    """Load the roster, persisting ids for hand-written entries that lack one.

    Every caller sees the same id for an entry, so a lookup from one load
    still matches after the file is read again.
    """
    roster, assigned = _read_roster(path)
    if assigned:
        save_roster_atomic(path, roster)
    return roster


def render_roster(roster: Roster) -> str:
    validated = validate_roster(roster)

    lines: list[str] = [
        f'leap_day_rule = "{validated.leap_day_rule}"',
        "",
        "# Birthday messages go out at 09:00 in each person's own timezone.",
        "",
    ]

    for person in validated.people:
        lines.append("[[people]]")
        lines.append(f'id = "{_toml_escape(person.person_id)}"')
        lines.append(f'first_name = "{_toml_escape(person.first_name)}"')
        lines.append(f'last_name = "{_toml_escape(person.last_name)}"')
        lines.append(f"month = {person.month}")
        lines.append(f"day = {person.day}")
        if person.year is not None:
            lines.append(f"year = {person.year}")
        lines.append(f'timezone = "{_toml_escape(person.timezone)}"')
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def save_roster_atomic(path: Path, roster: Roster) -> None:
    rendered = render_roster(roster)
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as temp_file:
        temp_file.write(rendered)
        temp_name = temp_file.name

    os.replace(temp_name, path)


def ensure_default_roster(path: Path) -> None:
    if path.exists():
        return
    save_roster_atomic(path, Roster(leap_day_rule=DEFAULT_LEAP_DAY_RULE, people=[]))


def get_person(path: Path, person_id: str) -> Person | None:
    for person in load_roster(path).people:
        if person.person_id == person_id:
            return person
    return None


def add_person(path: Path, new_person: Person) -> Person:
    roster = load_roster(path)
    checked = validate_person(new_person)
    save_roster_atomic(
        path,
        Roster(leap_day_rule=roster.leap_day_rule, people=[*roster.people, checked]),
    )
    return checked


def update_person(path: Path, updated_person: Person) -> Person:
    roster = load_roster(path)
    checked = validate_person(updated_person)

    people = list(roster.people)
    for index, person in enumerate(people):
        if person.person_id == checked.person_id:
            people[index] = checked
            break
    else:
        raise KeyError(checked.person_id)

    save_roster_atomic(path, Roster(leap_day_rule=roster.leap_day_rule, people=people))
    return checked


def delete_person(path: Path, person_id: str) -> Person | None:
    roster = load_roster(path)
    removed: Person | None = None
    kept: list[Person] = []
    for person in roster.people:
        if removed is None and person.person_id == person_id:
            removed = person
            continue
        kept.append(person)

    if removed is None:
        return None

    save_roster_atomic(path, Roster(leap_day_rule=roster.leap_day_rule, people=kept))
    return removed
