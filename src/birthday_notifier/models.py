from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


DEFAULT_LEAP_DAY_RULE = "feb28"


@dataclass(frozen=True)
class Person:
    person_id: str
    first_name: str
    last_name: str
    month: int
    day: int
    year: int | None
    timezone: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class Roster:
    leap_day_rule: str
    people: list[Person] = field(default_factory=list)


@dataclass(frozen=True)
class Occurrence:
    occurrence_id: str
    person_id: str
    scheduled_at: datetime
    payload: str
    delivered_at: datetime | None
    created_at: datetime

    @property
    def is_pending(self) -> bool:
        return self.delivered_at is None


class RegisterResult(Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class MarkResult(Enum):
    DELIVERED = "delivered"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class DeliveryReport:
    attempted: int
    delivered: int
    failed: int


@dataclass(frozen=True)
class ReconcileReport:
    created: int
    already_scheduled: int
