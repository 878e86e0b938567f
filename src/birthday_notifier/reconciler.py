from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from birthday_notifier.date_logic import utc_now
from birthday_notifier.models import ReconcileReport, RegisterResult
from birthday_notifier.people_store import load_roster
from birthday_notifier.planner import EnqueuePlanner

LOGGER = logging.getLogger(__name__)


class BootstrapReconciler:
    """Re-plans every person in the roster.

    Registration is idempotent, so a pass over unchanged records only
    costs reads; new or hand-edited records pick up their next occurrence
    without any notification from the record-management side.
    """

    def __init__(
        self,
        *,
        people_path: Path,
        planner: EnqueuePlanner,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._people_path = people_path
        self._planner = planner
        self._clock = clock

    def run_once(self, now: datetime | None = None) -> ReconcileReport:
        reference = now or self._clock()
        roster = load_roster(self._people_path)
        planner = self._planner.with_leap_day_rule(roster.leap_day_rule)

        created = 0
        already_scheduled = 0
        for person in roster.people:
            planned = planner.plan_for(person, reference)
            if planned.result is RegisterResult.CREATED:
                created += 1
            else:
                already_scheduled += 1

        if created:
            LOGGER.info("Reconciled %s people, %s new occurrence(s)", len(roster.people), created)
        else:
            LOGGER.debug("Reconciled %s people, nothing new to schedule", len(roster.people))
        return ReconcileReport(created=created, already_scheduled=already_scheduled)
