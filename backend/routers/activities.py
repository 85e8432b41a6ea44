from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query

import config
from auth import Participant, get_current_participant
from database import async_session
from mongo import events_col, plans_col, surveys_col
from schemas import (
    ClientInfo,
    ScheduleContext,
    ScheduledActivityListOut,
    ScheduledActivityOut,
    ScheduledActivityUpdate,
    UpdateResult,
)
from services.activity_store import SqlActivityStore
from services.mongo_sources import MongoContentResolver, MongoEventStore, MongoPlanSource
from services.scheduled_activities import InvalidWindowError, ScheduledActivityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v3/activities", tags=["activities"])


def get_activity_service() -> ScheduledActivityService:
    return ScheduledActivityService(
        MongoPlanSource(plans_col),
        MongoEventStore(events_col),
        MongoContentResolver(surveys_col),
        SqlActivityStore(async_session),
    )


# --- Helpers ---
def _ensure_tz(tz_name: str) -> str:
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(400, f"Unknown timezone: {tz_name}")
    return tz_name


def _parse_languages(header: Optional[str]) -> List[str]:
    """Primary language subtags from Accept-Language, most preferred first."""
    weighted = []
    for position, part in enumerate((header or "").split(",")):
        tag, _, params = part.strip().partition(";")
        tag = tag.strip()
        if not tag or tag == "*":
            continue
        q = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                q = float(params[2:])
            except ValueError:
                q = 0.0
        weighted.append((-q, position, tag.split("-")[0].lower()))

    languages: List[str] = []
    for _, _, lang in sorted(weighted):
        if lang not in languages:
            languages.append(lang)
    return languages


def _ends_on(until: Optional[str], days_ahead: Optional[int], now: datetime, tz_name: str) -> datetime:
    if until:
        try:
            dt = datetime.fromisoformat(until.replace("Z", "+00:00"))
        except ValueError:
            raise HTTPException(400, f"Bad date: {until}")
        return dt if dt.tzinfo else dt.replace(tzinfo=ZoneInfo(tz_name))
    days = days_ahead if days_ahead is not None else config.SCHEDULE_DEFAULT_DAYS_AHEAD
    return now + timedelta(days=days)


# --- Routes ---
@router.get("", response_model=ScheduledActivityListOut)
async def get_scheduled_activities(
    until: Optional[str] = Query(None, description="End of the window (exclusive), YYYY-MM-DDTHH:MM:SS or ISO"),
    days_ahead: Optional[int] = Query(None, alias="daysAhead", ge=0),
    tz: Optional[str] = Query(None, description="IANA TZ, e.g. Europe/Berlin"),
    user_agent: Optional[str] = Header(None),
    accept_language: Optional[str] = Header(None),
    participant: Participant = Depends(get_current_participant),
    service: ScheduledActivityService = Depends(get_activity_service),
):
    """
    Participant's activities from now until the end of the window, in scheduled order.
    Late-but-actionable and started activities are included; expired unstarted ones are not.
    """
    time_zone = _ensure_tz(tz or participant.time_zone or config.DEFAULT_TIME_ZONE)
    now = datetime.now(timezone.utc)
    context = ScheduleContext(
        study_id=participant.study_id,
        participant_id=participant.participant_id,
        user_id=participant.user_id,
        time_zone=time_zone,
        account_created_on=participant.created_on,
        ends_on=_ends_on(until, days_ahead, now, time_zone),
        now=now,
        data_groups=participant.data_groups,
        languages=_parse_languages(accept_language),
        client_info=ClientInfo.from_user_agent(user_agent),
    )
    try:
        result = await service.compute_schedule(context)
    except InvalidWindowError as e:
        raise HTTPException(400, str(e))

    for note in result.diagnostics:
        logger.info("Participant %s: %s", participant.participant_id, note)
    items = [ScheduledActivityOut.from_activity(a, now) for a in result.activities]
    return ScheduledActivityListOut(items=items, total=len(items))


@router.post("", response_model=List[UpdateResult])
async def update_scheduled_activities(
    updates: List[Optional[ScheduledActivityUpdate]] = Body(...),
    participant: Participant = Depends(get_current_participant),
    service: ScheduledActivityService = Depends(get_activity_service),
):
    """Record started/finished timestamps. Each item is accepted or rejected independently."""
    return await service.apply_updates(participant.participant_id, updates)


@router.delete("")
async def delete_scheduled_activities(
    participant: Participant = Depends(get_current_participant),
    service: ScheduledActivityService = Depends(get_activity_service),
):
    deleted = await service.delete_activities_for_participant(participant.participant_id)
    return {"participant_id": participant.participant_id, "deleted": deleted}
