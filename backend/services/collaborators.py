# services/collaborators.py
"""Interfaces of the systems the scheduler reads from and writes to."""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from schemas.activities import ScheduledActivity
from schemas.schedules import SchedulePlan, SurveyReference


class ContentNotFoundError(LookupError):
    """No published version of a referenced survey could be found."""


@dataclass
class SaveFailure:
    guid: str
    reason: str
    # The write was based on a version someone else has since replaced.
    stale: bool = False


class PlanSource(Protocol):
    async def list_plans(self, study_id: str) -> List[SchedulePlan]: ...


class EventStore(Protocol):
    async def get_events(self, participant_id: str) -> Dict[str, datetime]: ...

    async def record_event(self, participant_id: str, event_id: str, instant: datetime) -> None: ...


class ContentResolver(Protocol):
    async def get_latest_published(self, survey: SurveyReference) -> SurveyReference: ...


class ActivityStore(Protocol):
    async def get_by_participant(self, participant_id: str) -> List[ScheduledActivity]: ...

    async def get_by_identity(self, participant_id: str, guid: str) -> Optional[ScheduledActivity]: ...

    async def batch_save(self, participant_id: str, activities: List[ScheduledActivity]) -> List[SaveFailure]: ...

    async def delete_for_participant(self, participant_id: str) -> int: ...
