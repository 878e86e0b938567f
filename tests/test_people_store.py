from pathlib import Path

import pytest

from birthday_notifier.models import Person, Roster
from birthday_notifier.people_store import (
    add_person,
    delete_person,
    ensure_default_roster,
    get_person,
    load_roster,
    save_roster_atomic,
    update_person,
)


def _ada() -> Person:
    return Person("p-1", "Ada", "Lovelace", 12, 10, 1815, "Europe/London")


def test_roundtrip_roster(tmp_path: Path) -> None:
    path = tmp_path / "people.toml"
    roster = Roster(
        leap_day_rule="mar1",
        people=[_ada(), Person("p-2", 'Quote "Q"', "Back\\slash", 2, 29, None, "UTC")],
    )

    save_roster_atomic(path, roster)
    loaded = load_roster(path)

    assert loaded.leap_day_rule == "mar1"
    assert loaded.people == roster.people


def test_invalid_timezone_rejected(tmp_path: Path) -> None:
    path = tmp_path / "people.toml"
    path.write_text(
        """
[[people]]
id = "p-1"
first_name = "Ada"
last_name = "Lovelace"
month = 12
day = 10
timezone = "Europe/Atlantis"
""".strip()
        + "\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError):
        load_roster(path)


def test_invalid_leap_day_rule_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        save_roster_atomic(tmp_path / "people.toml", Roster(leap_day_rule="feb30", people=[]))


def test_year_must_form_real_date(tmp_path: Path) -> None:
    leapling = Person("p-1", "Leap", "Ling", 2, 29, 2001, "UTC")

    with pytest.raises(ValueError):
        save_roster_atomic(tmp_path / "people.toml", Roster(leap_day_rule="feb28", people=[leapling]))


def test_duplicate_ids_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        save_roster_atomic(
            tmp_path / "people.toml",
            Roster(leap_day_rule="feb28", people=[_ada(), _ada()]),
        )


def test_add_update_delete(tmp_path: Path) -> None:
    path = tmp_path / "people.toml"
    ensure_default_roster(path)

    add_person(path, _ada())
    update_person(path, Person("p-1", "Ada", "King", 12, 10, 1815, "America/New_York"))

    updated = get_person(path, "p-1")
    assert updated is not None
    assert updated.last_name == "King"
    assert updated.timezone == "America/New_York"

    removed = delete_person(path, "p-1")
    assert removed == updated
    assert load_roster(path).people == []
    assert delete_person(path, "p-1") is None


def test_update_missing_person_raises(tmp_path: Path) -> None:
    path = tmp_path / "people.toml"
    ensure_default_roster(path)

    with pytest.raises(KeyError):
        update_person(path, _ada())


def test_ensure_default_roster_keeps_existing(tmp_path: Path) -> None:
    path = tmp_path / "people.toml"
    save_roster_atomic(path, Roster(leap_day_rule="feb28", people=[_ada()]))

    ensure_default_roster(path)

    assert len(load_roster(path).people) == 1


def test_historic_birth_year_is_accepted(tmp_path: Path) -> None:
    path = tmp_path / "people.toml"
    ensure_default_roster(path)

    add_person(path, Person("p-9", "Old", "Timer", 3, 1, 1815, "UTC"))

    assert get_person(path, "p-9").year == 1815


def test_missing_id_is_assigned_once_and_persisted(tmp_path: Path) -> None:
    path = tmp_path / "people.toml"
    path.write_text(
        """
leap_day_rule = "feb28"

[[people]]
first_name = "Grace"
last_name = "Hopper"
month = 12
day = 9
timezone = "America/New_York"
""".strip()
        + "\n",
        encoding="utf-8",
    )

    first = load_roster(path)
    second = load_roster(path)

    assert first.people[0].person_id == second.people[0].person_id
    assert f'id = "{first.people[0].person_id}"' in path.read_text(encoding="utf-8")

    removed = delete_person(path, first.people[0].person_id)
    assert removed is not None
    assert removed.full_name == "Grace Hopper"
    assert load_roster(path).people == []
