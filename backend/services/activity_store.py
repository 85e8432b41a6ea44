# services/activity_store.py
from __future__ import annotations
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

import crud
from schemas.activities import ScheduledActivity
from services.collaborators import SaveFailure


class SqlActivityStore:
    """ActivityStore backed by the scheduled_activities table."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def get_by_participant(self, participant_id: str) -> List[ScheduledActivity]:
        async with self.session_factory() as db:
            return await crud.get_activities_for_participant(db, participant_id)

    async def get_by_identity(self, participant_id: str, guid: str) -> Optional[ScheduledActivity]:
        async with self.session_factory() as db:
            return await crud.get_activity(db, participant_id, guid)

    async def batch_save(self, participant_id: str, activities: List[ScheduledActivity]) -> List[SaveFailure]:
        async with self.session_factory() as db:
            return await crud.save_activities(db, participant_id, activities)

    async def delete_for_participant(self, participant_id: str) -> int:
        async with self.session_factory() as db:
            return await crud.delete_activities_for_participant(db, participant_id)
