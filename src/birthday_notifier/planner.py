from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from birthday_notifier.date_logic import next_occurrence
from birthday_notifier.models import DEFAULT_LEAP_DAY_RULE, Person, RegisterResult
from birthday_notifier.outbox_store import OutboxStore

LOGGER = logging.getLogger(__name__)

MESSAGE_TEMPLATE = "Hey, {full_name}, it’s your birthday"


@dataclass(frozen=True)
class PlannedOccurrence:
    scheduled_at: datetime
    result: RegisterResult


class EnqueuePlanner:
    """Registers each person's next birthday occurrence in the outbox.

    Safe to call any number of times for the same person: the outbox decides
    whether the occurrence is new, so the record-management path and the
    periodic reconciler never need to coordinate.
    """

    def __init__(self, store: OutboxStore, *, leap_day_rule: str = DEFAULT_LEAP_DAY_RULE) -> None:
        self._store = store
        self._leap_day_rule = leap_day_rule

    @property
    def leap_day_rule(self) -> str:
        return self._leap_day_rule

    def with_leap_day_rule(self, leap_day_rule: str) -> EnqueuePlanner:
        if leap_day_rule == self._leap_day_rule:
            return self
        return EnqueuePlanner(self._store, leap_day_rule=leap_day_rule)

    @staticmethod
    def build_payload(person: Person) -> str:
        return MESSAGE_TEMPLATE.format(full_name=person.full_name)

    def plan_for(self, person: Person, reference: datetime) -> PlannedOccurrence:
        scheduled_at = next_occurrence(
            person.month,
            person.day,
            person.timezone,
            reference,
            self._leap_day_rule,
        )
        result = self._store.register(person.person_id, scheduled_at, self.build_payload(person))
        if result is RegisterResult.ALREADY_EXISTS:
            LOGGER.debug("Occurrence for %s at %s already registered", person.person_id, scheduled_at.isoformat())
        return PlannedOccurrence(scheduled_at=scheduled_at, result=result)
