from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models import ScheduledActivityRecord
from schemas.activities import ScheduledActivity
from schemas.schedules import Activity
from services.collaborators import SaveFailure


def _to_db_instant(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_instant(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def to_record(participant_id: str, activity: ScheduledActivity, version: int) -> ScheduledActivityRecord:
    return ScheduledActivityRecord(
        participant_id=participant_id,
        guid=activity.guid,
        schedule_plan_guid=activity.schedule_plan_guid,
        time_zone=activity.time_zone,
        local_scheduled_on=activity.local_scheduled_on,
        local_expires_on=activity.local_expires_on,
        activity=activity.activity.model_dump(mode="json", by_alias=True),
        persistent=activity.persistent,
        started_on=_to_db_instant(activity.started_on),
        finished_on=_to_db_instant(activity.finished_on),
        version=version,
    )


def from_record(record: ScheduledActivityRecord) -> ScheduledActivity:
    return ScheduledActivity(
        guid=record.guid,
        schedule_plan_guid=record.schedule_plan_guid,
        participant_id=record.participant_id,
        time_zone=record.time_zone,
        local_scheduled_on=record.local_scheduled_on,
        local_expires_on=record.local_expires_on,
        activity=Activity.model_validate(record.activity),
        persistent=record.persistent,
        started_on=_from_db_instant(record.started_on),
        finished_on=_from_db_instant(record.finished_on),
        version=record.version,
    )


async def get_activities_for_participant(db: AsyncSession, participant_id: str) -> List[ScheduledActivity]:
    result = await db.execute(
        select(ScheduledActivityRecord).where(ScheduledActivityRecord.participant_id == participant_id)
    )
    return [from_record(r) for r in result.scalars().all()]


async def get_activity(db: AsyncSession, participant_id: str, guid: str) -> Optional[ScheduledActivity]:
    record = await db.get(ScheduledActivityRecord, (participant_id, guid))
    return from_record(record) if record else None


async def save_activities(
    db: AsyncSession, participant_id: str, activities: List[ScheduledActivity]
) -> List[SaveFailure]:
    """Insert new occurrences and update known ones, guarded by their version.

    An occurrence without a version must not exist yet; one with a version is
    only written if the stored row still carries that version. Database errors
    fail the whole batch; they are returned, never raised.
    """
    failures: List[SaveFailure] = []
    try:
        for activity in activities:
            if activity.version is None:
                if await db.get(ScheduledActivityRecord, (participant_id, activity.guid)) is not None:
                    failures.append(SaveFailure(activity.guid, "Activity was created concurrently", stale=True))
                    continue
                db.add(to_record(participant_id, activity, version=1))
            else:
                values = to_record(participant_id, activity, version=activity.version + 1).model_dump(
                    exclude={"participant_id", "guid"}
                )
                result = await db.execute(
                    update(ScheduledActivityRecord)
                    .where(
                        ScheduledActivityRecord.participant_id == participant_id,
                        ScheduledActivityRecord.guid == activity.guid,
                        ScheduledActivityRecord.version == activity.version,
                    )
                    .values(**values)
                )
                if result.rowcount == 0:
                    failures.append(SaveFailure(activity.guid, "Activity was modified concurrently", stale=True))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        # A duplicate key means another writer inserted first; re-reading resolves it.
        stale = isinstance(e, IntegrityError)
        return [SaveFailure(a.guid, str(e), stale=stale) for a in activities]
    return failures


async def delete_activities_for_participant(db: AsyncSession, participant_id: str) -> int:
    result = await db.execute(
        delete(ScheduledActivityRecord).where(ScheduledActivityRecord.participant_id == participant_id)
    )
    await db.commit()
    return result.rowcount
