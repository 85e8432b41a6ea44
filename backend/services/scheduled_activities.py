# services/scheduled_activities.py
"""Participant schedule computation.

For each schedule plan: pick the participant's schedule, expand it into
occurrences, then reconcile everything against the persisted store, write
back what changed and return the visible occurrences in order.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import config
from schemas.activities import (
    ScheduleContext,
    ScheduledActivity,
    ScheduledActivityUpdate,
    UpdateResult,
)
from schemas.schedules import Activity, Schedule, SchedulePlan, SurveyReference
from services.collaborators import (
    ActivityStore,
    ContentNotFoundError,
    ContentResolver,
    EventStore,
    PlanSource,
    SaveFailure,
)
from services.criteria import matches as criteria_matches
from services.occurrences import Occurrences, resolve_trigger
from services.ordering import finalize
from services.reconcile import Reconciliation, reconcile
from services.strategies import select_schedule

logger = logging.getLogger(__name__)


def finished_event_id(activity_guid: str) -> str:
    return f"activity:{activity_guid}:finished"


class InvalidWindowError(ValueError):
    """The requested window is in the past or reaches too far ahead."""


@dataclass
class ScheduleResult:
    activities: List[ScheduledActivity]
    saved: int = 0
    save_failures: List[SaveFailure] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)

    @property
    def fully_persisted(self) -> bool:
        return not self.save_failures


def validate_window(context: ScheduleContext, max_days: int) -> None:
    if context.ends_on <= context.now:
        raise InvalidWindowError("endsOn must be in the future")
    if context.ends_on - context.now > timedelta(days=max_days):
        raise InvalidWindowError(f"endsOn cannot be more than {max_days} days in the future")


def _latest_known_surveys(persisted: Sequence[ScheduledActivity]) -> Dict[str, SurveyReference]:
    latest: Dict[str, SurveyReference] = {}
    for scheduled in persisted:
        survey = scheduled.activity.survey
        if survey is None or survey.created_on is None:
            continue
        current = latest.get(survey.guid)
        if current is None or survey.created_on > current.created_on:
            latest[survey.guid] = survey
    return latest


def _apply_lifecycle(existing: ScheduledActivity, update: ScheduledActivityUpdate) -> Optional[ScheduledActivity]:
    changes = {}
    if update.started_on is not None and update.started_on != existing.started_on:
        changes["started_on"] = update.started_on
    if update.finished_on is not None and update.finished_on != existing.finished_on:
        changes["finished_on"] = update.finished_on
        if existing.started_on is None and "started_on" not in changes:
            changes["started_on"] = update.finished_on
    if not changes:
        return None
    return existing.model_copy(update=changes)


class ScheduledActivityService:
    def __init__(
        self,
        plans: PlanSource,
        events: EventStore,
        content: ContentResolver,
        store: ActivityStore,
        max_window_days: Optional[int] = None,
        save_attempts: Optional[int] = None,
    ):
        self.plans = plans
        self.events = events
        self.content = content
        self.store = store
        self.max_window_days = max_window_days or config.SCHEDULE_MAX_WINDOW_DAYS
        self.save_attempts = max(1, save_attempts or config.SCHEDULE_SAVE_ATTEMPTS)

    async def compute_schedule(self, context: ScheduleContext) -> ScheduleResult:
        validate_window(context, self.max_window_days)

        plans, events, persisted = await asyncio.gather(
            self.plans.list_plans(context.study_id),
            self.events.get_events(context.participant_id),
            self.store.get_by_participant(context.participant_id),
        )
        context = context.with_events(events)
        diagnostics: List[str] = []

        selected = self._select_schedules(plans, context, diagnostics)
        surveys = await self._resolve_surveys(selected, persisted, diagnostics)
        generated = self._generate(selected, context, surveys)

        outcome, saved, failures = await self._reconcile_and_save(context, generated, persisted)
        activities = finalize(outcome.activities, context.now)
        logger.info(
            "Participant %s: %d activities from %d plans (%d saved, %d failed)",
            context.participant_id, len(activities), len(plans), saved, len(failures),
        )
        return ScheduleResult(activities, saved=saved, save_failures=failures, diagnostics=diagnostics)

    def _select_schedules(
        self,
        plans: Sequence[SchedulePlan],
        context: ScheduleContext,
        diagnostics: List[str],
    ) -> List[Tuple[SchedulePlan, Schedule]]:
        selected = []
        for plan in plans:
            if not criteria_matches(plan.criteria, context):
                continue
            schedule = select_schedule(plan, context)
            if schedule is None:
                continue
            if resolve_trigger(schedule, context) is None:
                logger.warning(
                    "Participant %s has no '%s' event; plan %s contributes nothing",
                    context.participant_id, schedule.event_id, plan.guid,
                )
                diagnostics.append(f"Plan {plan.guid}: no triggering event '{schedule.event_id}'")
                continue
            selected.append((plan, schedule))
        return selected

    async def _latest_survey(self, survey: SurveyReference) -> Optional[SurveyReference]:
        try:
            return await self.content.get_latest_published(survey)
        except ContentNotFoundError as e:
            logger.warning("Could not resolve survey %s: %s", survey.guid, e)
            return None

    async def _resolve_surveys(
        self,
        selected: Sequence[Tuple[SchedulePlan, Schedule]],
        persisted: Sequence[ScheduledActivity],
        diagnostics: List[str],
    ) -> Dict[str, Optional[SurveyReference]]:
        """Look up each floating survey reference once, however many plans use it."""
        floating: Dict[str, SurveyReference] = {}
        for _, schedule in selected:
            for activity in schedule.activities:
                if activity.survey is not None and not activity.survey.pinned:
                    floating.setdefault(activity.survey.guid, activity.survey)
        if not floating:
            return {}

        lookups = await asyncio.gather(*(self._latest_survey(ref) for ref in floating.values()))
        last_known = _latest_known_surveys(persisted)

        resolved: Dict[str, Optional[SurveyReference]] = {}
        for ref, latest in zip(floating.values(), lookups):
            if latest is None:
                latest = last_known.get(ref.guid)
                if latest is not None:
                    diagnostics.append(f"Survey {ref.guid}: using last known version {latest.created_on.isoformat()}")
                else:
                    diagnostics.append(f"Survey {ref.guid}: no published version, activities skipped")
            resolved[ref.guid] = latest
        return resolved

    def _generate(
        self,
        selected: Sequence[Tuple[SchedulePlan, Schedule]],
        context: ScheduleContext,
        surveys: Dict[str, Optional[SurveyReference]],
    ) -> List[ScheduledActivity]:
        def snapshot(template: Activity) -> Optional[Activity]:
            survey = template.survey
            if survey is None or survey.pinned:
                return template
            latest = surveys.get(survey.guid)
            if latest is None:
                return None
            return template.model_copy(update={"survey": latest})

        generated: Dict[str, ScheduledActivity] = {}
        for plan, schedule in selected:
            for occurrence in Occurrences(schedule, plan, context, snapshot):
                generated.setdefault(occurrence.guid, occurrence)
        return list(generated.values())

    async def _reconcile_and_save(
        self,
        context: ScheduleContext,
        generated: List[ScheduledActivity],
        persisted: List[ScheduledActivity],
    ) -> Tuple[Reconciliation, int, List[SaveFailure]]:
        saved = 0
        attempt = 1
        while True:
            outcome = reconcile(generated, persisted, context.now)
            if not outcome.to_save:
                return outcome, saved, []
            failures = await self.store.batch_save(context.participant_id, outcome.to_save)
            saved += len(outcome.to_save) - len(failures)
            if not any(f.stale for f in failures) or attempt >= self.save_attempts:
                break
            logger.warning(
                "Stale write for participant %s (%d items), re-reading and retrying",
                context.participant_id, len(failures),
            )
            attempt += 1
            persisted = await self.store.get_by_participant(context.participant_id)

        for failure in failures:
            logger.warning("Could not save activity %s: %s", failure.guid, failure.reason)
        return outcome, saved, failures

    async def apply_updates(
        self,
        participant_id: str,
        updates: Sequence[Optional[ScheduledActivityUpdate]],
    ) -> List[UpdateResult]:
        """Apply started/finished timestamps sent by the participant.

        Each item is accepted or rejected on its own; a bad item never blocks
        the rest of the batch.
        """
        results: List[Optional[UpdateResult]] = [None] * len(updates)
        remaining: Dict[str, Tuple[int, ScheduledActivityUpdate]] = {}
        for index, update in enumerate(updates):
            if update is None or not update.guid:
                results[index] = UpdateResult(accepted=False, reason="Activity is missing a guid")
            elif update.guid in remaining:
                results[index] = UpdateResult(guid=update.guid, accepted=False, reason="Duplicate activity in request")
            else:
                remaining[update.guid] = (index, update)

        # (result index, activity) pairs whose finished event must be published.
        finished: List[Tuple[int, ScheduledActivity]] = []
        attempt = 1
        while remaining:
            guids = list(remaining)
            found = await asyncio.gather(*(self.store.get_by_identity(participant_id, g) for g in guids))

            to_save: List[Tuple[ScheduledActivity, bool]] = []
            for guid, existing in zip(guids, found):
                index, update = remaining[guid]
                if existing is None:
                    results[index] = UpdateResult(guid=guid, accepted=False, reason="Activity not found")
                    del remaining[guid]
                    continue
                updated = _apply_lifecycle(existing, update)
                if updated is None:
                    results[index] = UpdateResult(guid=guid, accepted=True)
                    if update.finished_on is not None and update.finished_on == existing.finished_on:
                        # A resent finish; its event may not have been published the first time.
                        finished.append((index, existing))
                    del remaining[guid]
                    continue
                finishing = existing.finished_on is None and updated.finished_on is not None
                to_save.append((updated, finishing))
            if not to_save:
                break

            failures = {
                f.guid: f
                for f in await self.store.batch_save(participant_id, [a for a, _ in to_save])
            }
            for activity, finishing in to_save:
                index, _ = remaining[activity.guid]
                failure = failures.get(activity.guid)
                if failure is None:
                    results[index] = UpdateResult(guid=activity.guid, accepted=True)
                    if finishing:
                        finished.append((index, activity))
                elif failure.stale and attempt < self.save_attempts:
                    continue
                else:
                    results[index] = UpdateResult(guid=activity.guid, accepted=False, reason=failure.reason)
                del remaining[activity.guid]
            attempt += 1

        for index, activity in finished:
            try:
                await self.events.record_event(
                    participant_id, finished_event_id(activity.activity.guid), activity.finished_on
                )
            except Exception as e:
                # The finish is stored; resending the same update publishes the event.
                logger.warning("Could not record finished event for activity %s: %s", activity.guid, e)
                results[index] = UpdateResult(
                    guid=activity.guid, accepted=False, reason="Could not record finished event"
                )
        return results

    async def delete_activities_for_participant(self, participant_id: str) -> int:
        if not participant_id or not participant_id.strip():
            raise ValueError("participant_id cannot be blank")
        deleted = await self.store.delete_for_participant(participant_id)
        logger.info("Deleted %d activities for participant %s", deleted, participant_id)
        return deleted
