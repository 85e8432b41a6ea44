# services/occurrences.py
"""Expand a selected schedule into concrete, timestamped occurrences.

All calendar arithmetic happens on the participant's local wall clock: an
activity scheduled daily at 09:00 stays at 09:00 local across DST changes,
whatever zone the server runs in. Local datetimes are naive; they are only
attached to the zone when compared against absolute instants.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Optional, Set
from zoneinfo import ZoneInfo

from croniter import croniter

from schemas.activities import ScheduleContext, ScheduledActivity
from schemas.schedules import ENROLLMENT_EVENT, Activity, Schedule, SchedulePlan

logger = logging.getLogger(__name__)

# Returns the snapshot to embed in an occurrence, or None to skip the activity.
ActivityResolver = Callable[[Activity], Optional[Activity]]


def make_guid(plan_guid: str, activity_guid: str, local_scheduled_on: datetime) -> str:
    """Identity of an occurrence; the same logical occurrence always gets the same guid."""
    return f"{plan_guid}:{activity_guid}:{local_scheduled_on.isoformat(timespec='milliseconds')}"


def _to_local(instant: datetime, tz: ZoneInfo) -> datetime:
    return instant.astimezone(tz).replace(tzinfo=None)


def resolve_trigger(schedule: Schedule, context: ScheduleContext) -> Optional[datetime]:
    """Instant of the first listed event the participant has; enrollment falls back to account creation."""
    for event_id in schedule.event_ids:
        instant = context.events.get(event_id)
        if instant is None and event_id == ENROLLMENT_EVENT:
            instant = context.account_created_on
        if instant is not None:
            return instant
    return None


def _once_instant(start: datetime, schedule: Schedule) -> datetime:
    if not schedule.times:
        return start
    # First listed time of day at or after the start, rolling over to the next day.
    for t in schedule.times:
        candidate = datetime.combine(start.date(), t)
        if candidate >= start:
            return candidate
    return datetime.combine(start.date() + timedelta(days=1), schedule.times[0])


def _interval_instants(start: datetime, interval: timedelta, end: datetime, skip_to: Optional[datetime]) -> Iterator[datetime]:
    current = start
    if skip_to is not None and skip_to > start:
        # Last slot on the start + k * interval grid strictly before skip_to.
        steps = (skip_to - start) // interval
        if start + steps * interval == skip_to:
            steps -= 1
        current = start + steps * interval
    while current < end:
        yield current
        current += interval


def _daily_instants(start: datetime, schedule: Schedule, end: datetime, skip_to: Optional[datetime]) -> Iterator[datetime]:
    step_days = max(1, schedule.interval.days) if schedule.interval else 1
    day = start.date()
    if skip_to is not None and skip_to > start:
        # One step back from the grid day holding skip_to, so the last slot
        # before skip_to is still produced.
        steps = max(0, (skip_to.date() - day).days // step_days - 1)
        day += timedelta(days=steps * step_days)
    while True:
        for t in schedule.times:
            candidate = datetime.combine(day, t)
            if candidate >= end:
                return
            if candidate >= start:
                yield candidate
        day += timedelta(days=step_days)


def _cron_instants(expression: str, start: datetime, end: datetime, skip_to: Optional[datetime]) -> Iterator[datetime]:
    try:
        seed = start
        if skip_to is not None and skip_to > start:
            seed = max(start, croniter(expression, skip_to).get_prev(datetime))
        itr = croniter(expression, seed - timedelta(seconds=1))
    except ValueError as e:
        logger.warning("Invalid cron trigger %r: %s", expression, e)
        return
    while True:
        candidate = itr.get_next(datetime)
        if candidate >= end:
            return
        if candidate >= start:
            yield candidate


def scheduled_instants(
    schedule: Schedule,
    trigger_local: datetime,
    end_local: datetime,
    skip_to: Optional[datetime] = None,
) -> Iterator[datetime]:
    """Local instants a schedule fires at, from trigger + delay up to (excluding) end_local.

    With skip_to, recurring schedules start at their last slot before it
    instead of at the first slot after the trigger. Slots stay on the grid
    anchored at the trigger, so identities do not depend on skip_to.
    """
    start = trigger_local + (schedule.delay or timedelta(0))

    if schedule.schedule_type == "once":
        instant = _once_instant(start, schedule)
        if instant < end_local:
            yield instant
        return

    if schedule.cron_trigger:
        yield from _cron_instants(schedule.cron_trigger, start, end_local, skip_to)
    elif schedule.times:
        yield from _daily_instants(start, schedule, end_local, skip_to)
    elif schedule.interval and schedule.interval > timedelta(0):
        yield from _interval_instants(start, schedule.interval, end_local, skip_to)
    else:
        logger.warning("Recurring schedule %r has neither interval nor cron trigger", schedule.label)


def earliest_relevant(schedule: Schedule, now_local: datetime) -> datetime:
    """Slots before this instant can never be offered again."""
    if schedule.expires is not None:
        return now_local - schedule.expires
    return now_local



def _actionable_instants(schedule: Schedule, instants: Iterator[datetime], now_local: datetime) -> Iterator[datetime]:
    """Drop instants that can no longer be acted on.

    Expiring occurrences are dropped once expired. A recurring schedule
    without expiration keeps only its most recent past slot; earlier missed
    slots are superseded by it.
    """
    if schedule.expires is not None:
        for instant in instants:
            if instant + schedule.expires >= now_local:
                yield instant
        return
    if schedule.schedule_type == "once":
        yield from instants
        return

    latest_past: Optional[datetime] = None
    for instant in instants:
        if instant < now_local:
            latest_past = instant
            continue
        if latest_past is not None:
            yield latest_past
            latest_past = None
        yield instant
    if latest_past is not None:
        yield latest_past


class Occurrences:
    """Lazy, finite and restartable sequence of occurrences for one plan's schedule.

    Each iteration recomputes from the same inputs, so iterating twice yields
    the same occurrences with the same identities.
    """

    def __init__(
        self,
        schedule: Schedule,
        plan: SchedulePlan,
        context: ScheduleContext,
        resolve_activity: Optional[ActivityResolver] = None,
    ):
        self.schedule = schedule
        self.plan = plan
        self.context = context
        self.resolve_activity = resolve_activity

    def __iter__(self) -> Iterator[ScheduledActivity]:
        return self._generate()

    def _generate(self) -> Iterator[ScheduledActivity]:
        trigger = resolve_trigger(self.schedule, self.context)
        if trigger is None:
            return

        tz = self.context.zone
        now_local = _to_local(self.context.now, tz)
        instants = scheduled_instants(
            self.schedule,
            _to_local(trigger, tz),
            _to_local(self.context.ends_on, tz),
            skip_to=earliest_relevant(self.schedule, now_local),
        )

        seen: Set[str] = set()
        for local_on in _actionable_instants(self.schedule, instants, now_local):
            local_expires = local_on + self.schedule.expires if self.schedule.expires is not None else None
            for template in self.schedule.activities:
                snapshot = self.resolve_activity(template) if self.resolve_activity else template
                if snapshot is None:
                    continue
                guid = make_guid(self.plan.guid, template.guid, local_on)
                if guid in seen:
                    continue
                seen.add(guid)
                yield ScheduledActivity(
                    guid=guid,
                    schedule_plan_guid=self.plan.guid,
                    participant_id=self.context.participant_id,
                    time_zone=self.context.time_zone,
                    local_scheduled_on=local_on,
                    local_expires_on=local_expires,
                    activity=snapshot,
                    persistent=self.schedule.persistent,
                )


def generate(
    schedule: Schedule,
    plan: SchedulePlan,
    context: ScheduleContext,
    resolve_activity: Optional[ActivityResolver] = None,
) -> List[ScheduledActivity]:
    return list(Occurrences(schedule, plan, context, resolve_activity))
