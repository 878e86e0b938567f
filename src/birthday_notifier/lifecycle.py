from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from birthday_notifier.date_logic import utc_now
from birthday_notifier.models import Person
from birthday_notifier.outbox_store import OutboxStore
from birthday_notifier.planner import EnqueuePlanner, PlannedOccurrence

LOGGER = logging.getLogger(__name__)


class PersonLifecycle:
    """Keeps the outbox in step with create/update/delete of person records."""

    def __init__(
        self,
        *,
        store: OutboxStore,
        planner: EnqueuePlanner,
        cascade_delete: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._planner = planner
        self._cascade_delete = cascade_delete
        self._clock = clock

    def _planner_for(self, leap_day_rule: str | None) -> EnqueuePlanner:
        if leap_day_rule is None:
            return self._planner
        return self._planner.with_leap_day_rule(leap_day_rule)

    def on_person_created(self, person: Person, *, leap_day_rule: str | None = None) -> PlannedOccurrence:
        planned = self._planner_for(leap_day_rule).plan_for(person, self._clock())
        LOGGER.info("Scheduled %s for %s", person.person_id, planned.scheduled_at.isoformat())
        return planned

    def on_person_updated(self, person: Person, *, leap_day_rule: str | None = None) -> PlannedOccurrence:
        # The old pending row was computed from the previous birthday/timezone.
        self._store.clear_pending_for(person.person_id)
        planned = self._planner_for(leap_day_rule).plan_for(person, self._clock())
        LOGGER.info("Rescheduled %s for %s", person.person_id, planned.scheduled_at.isoformat())
        return planned

    def on_person_deleted(self, person_id: str) -> int:
        if self._cascade_delete:
            return self._store.purge_person(person_id)
        return self._store.clear_pending_for(person_id)
