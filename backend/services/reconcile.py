# services/reconcile.py
"""Merge freshly generated occurrences with the ones already persisted.

Persisted lifecycle timestamps (startedOn / finishedOn) always win; the
fresh computation only contributes occurrences the store has not seen and
content refreshes for work that has not been started yet.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List

from schemas.activities import ScheduledActivity


@dataclass
class Reconciliation:
    activities: List[ScheduledActivity] = field(default_factory=list)
    to_save: List[ScheduledActivity] = field(default_factory=list)


def reconcile(
    generated: Iterable[ScheduledActivity],
    persisted: Iterable[ScheduledActivity],
    now: datetime,
) -> Reconciliation:
    by_guid: Dict[str, ScheduledActivity] = {p.guid: p for p in persisted}
    result = Reconciliation()

    for fresh in generated:
        existing = by_guid.get(fresh.guid)

        if existing is None:
            result.activities.append(fresh)
            # Nothing to gain from persisting work that is already dead.
            if not (fresh.started_on is None and fresh.is_expired(now)):
                result.to_save.append(fresh)
            continue

        if existing.finished_on is not None:
            # Already happened in this slot; persistent schedules surface again
            # through a new slot, which has a different identity.
            continue

        if existing.started_on is not None or existing.activity == fresh.activity:
            result.activities.append(existing)
            continue

        # Content drift on work that has not been started: refresh in place.
        refreshed = existing.model_copy(update={"activity": fresh.activity})
        result.activities.append(refreshed)
        result.to_save.append(refreshed)

    return result
