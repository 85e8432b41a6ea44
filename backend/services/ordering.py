# services/ordering.py
from __future__ import annotations
from datetime import datetime
from typing import Iterable, List, Tuple

from schemas.activities import ScheduledActivity


def _is_dead(activity: ScheduledActivity, now: datetime) -> bool:
    # Late, never started, no longer actionable.
    return (
        activity.finished_on is None
        and activity.started_on is None
        and activity.is_expired(now)
    )


def _sort_key(activity: ScheduledActivity) -> Tuple[datetime, str, str]:
    return (activity.local_scheduled_on, activity.activity.label, activity.guid)


def finalize(activities: Iterable[ScheduledActivity], now: datetime) -> List[ScheduledActivity]:
    """Participant-visible occurrences, in scheduled order.

    Ties on the scheduled instant fall back to label, then guid, so identical
    inputs always produce the same list.
    """
    return sorted((a for a in activities if not _is_dead(a, now)), key=_sort_key)
