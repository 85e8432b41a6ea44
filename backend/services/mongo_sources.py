# services/mongo_sources.py
"""Mongo-backed plan source, event store and survey resolver.

pymongo is blocking, so every query runs in Starlette's threadpool.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import ValidationError
from pymongo import DESCENDING
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

from schemas.schedules import SchedulePlan, SurveyReference
from services.collaborators import ContentNotFoundError

logger = logging.getLogger(__name__)


def _ensure_utc(v: Any) -> datetime:
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    dt = datetime.fromisoformat(str(v).replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class MongoPlanSource:
    def __init__(self, collection):
        self.collection = collection

    def _list_plans(self, study_id: str) -> List[SchedulePlan]:
        plans = []
        for doc in self.collection.find({"studyId": study_id, "deleted": {"$ne": True}}).sort("guid"):
            try:
                plans.append(SchedulePlan.model_validate(doc))
            except ValidationError as e:
                # Plans are validated when authored; a bad one is skipped, not fatal.
                logger.warning("Skipping malformed schedule plan %s: %s", doc.get("guid"), e)
        return plans

    async def list_plans(self, study_id: str) -> List[SchedulePlan]:
        return await run_in_threadpool(self._list_plans, study_id)


class MongoEventStore:
    def __init__(self, collection):
        self.collection = collection

    def _get_events(self, participant_id: str) -> Dict[str, datetime]:
        events: Dict[str, datetime] = {}
        for doc in self.collection.find({"participantId": participant_id}):
            event_id = doc.get("eventId")
            timestamp = doc.get("timestamp")
            if not event_id or timestamp is None:
                continue
            try:
                events[event_id] = _ensure_utc(timestamp)
            except ValueError:
                logger.warning("Ignoring event %s with bad timestamp %r", event_id, timestamp)
        return events

    async def get_events(self, participant_id: str) -> Dict[str, datetime]:
        return await run_in_threadpool(self._get_events, participant_id)

    def _record_event(self, participant_id: str, event_id: str, instant: datetime) -> None:
        self.collection.update_one(
            {"participantId": participant_id, "eventId": event_id},
            {"$set": {"timestamp": instant}},
            upsert=True,
        )

    async def record_event(self, participant_id: str, event_id: str, instant: datetime) -> None:
        await run_in_threadpool(self._record_event, participant_id, event_id, instant)


class MongoContentResolver:
    def __init__(self, collection):
        self.collection = collection

    def _latest_published(self, survey: SurveyReference) -> SurveyReference:
        try:
            doc = self.collection.find_one(
                {"guid": survey.guid, "published": True},
                sort=[("createdOn", DESCENDING)],
            )
        except PyMongoError as e:
            raise ContentNotFoundError(f"Survey lookup failed for {survey.guid}: {e}") from e
        if not doc:
            raise ContentNotFoundError(f"No published version of survey {survey.guid}")
        return SurveyReference(
            identifier=doc.get("identifier") or survey.identifier,
            guid=survey.guid,
            created_on=_ensure_utc(doc["createdOn"]),
        )

    async def get_latest_published(self, survey: SurveyReference) -> SurveyReference:
        return await run_in_threadpool(self._latest_published, survey)
