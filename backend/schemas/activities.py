# schemas/activities.py
from __future__ import annotations
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator

from .schedules import Activity, CamelModel

STATUS_SCHEDULED = "scheduled"
STATUS_AVAILABLE = "available"
STATUS_STARTED = "started"
STATUS_FINISHED = "finished"
STATUS_EXPIRED = "expired"

# AppName/36 (iPhone 5S; iPhone OS/9.2.1) StudySDK/7, with the device and SDK parts optional.
_USER_AGENT_RE = re.compile(
    r"^(?P<app_name>[^/()]+)/(?P<app_version>\d+)"
    r"(?:\s*\((?P<device>[^;()]+);\s*(?P<os_name>[^/()]+)/(?P<os_version>[^()]+)\))?"
    r"(?:\s*(?P<sdk_name>[^/\s()]+)/(?P<sdk_version>\d+))?\s*$"
)


def _utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {name}")


class ClientInfo(CamelModel):
    app_name: Optional[str] = None
    app_version: Optional[int] = None
    device_name: Optional[str] = None
    os_name: Optional[str] = None
    os_version: Optional[str] = None
    sdk_name: Optional[str] = None
    sdk_version: Optional[int] = None

    @classmethod
    def from_user_agent(cls, user_agent: Optional[str]) -> "ClientInfo":
        """Parse a User-Agent header; anything unrecognised is an unknown client."""
        m = _USER_AGENT_RE.match((user_agent or "").strip())
        if not m:
            return cls()
        g = m.groupdict()
        return cls(
            app_name=g["app_name"].strip(),
            app_version=int(g["app_version"]),
            device_name=g["device"].strip() if g["device"] else None,
            os_name=g["os_name"].strip() if g["os_name"] else None,
            os_version=g["os_version"].strip() if g["os_version"] else None,
            sdk_name=g["sdk_name"],
            sdk_version=int(g["sdk_version"]) if g["sdk_version"] else None,
        )


class ScheduleContext(CamelModel):
    study_id: str
    participant_id: str
    user_id: Optional[str] = None
    time_zone: str = "UTC"
    account_created_on: datetime
    ends_on: datetime
    now: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    events: Dict[str, datetime] = Field(default_factory=dict)
    data_groups: Set[str] = Field(default_factory=set)
    languages: List[str] = Field(default_factory=list)
    client_info: ClientInfo = Field(default_factory=ClientInfo)

    @field_validator("time_zone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        _zone(v)
        return v

    @field_validator("account_created_on", "ends_on", "now")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        return _utc(v)

    @field_validator("events")
    @classmethod
    def _aware_events(cls, v: Dict[str, datetime]) -> Dict[str, datetime]:
        return {k: _utc(dt) for k, dt in v.items()}

    @property
    def zone(self) -> ZoneInfo:
        return _zone(self.time_zone)

    def with_events(self, events: Dict[str, datetime]) -> "ScheduleContext":
        """Events passed on the context win over those read from the event store."""
        merged = {k: _utc(dt) for k, dt in events.items()}
        merged.update(self.events)
        return self.model_copy(update={"events": merged})


class ScheduledActivity(CamelModel):
    guid: str
    schedule_plan_guid: Optional[str] = None
    participant_id: Optional[str] = None
    time_zone: str = "UTC"
    local_scheduled_on: datetime
    local_expires_on: Optional[datetime] = None
    activity: Activity
    persistent: bool = False
    started_on: Optional[datetime] = None
    finished_on: Optional[datetime] = None
    # Optimistic concurrency token; None until the store has seen this occurrence.
    version: Optional[int] = None

    @field_validator("started_on", "finished_on")
    @classmethod
    def _aware_lifecycle(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _utc(v) if v is not None else None

    @property
    def zone(self) -> ZoneInfo:
        return _zone(self.time_zone)

    @property
    def scheduled_on(self) -> datetime:
        return self.local_scheduled_on.replace(tzinfo=self.zone)

    @property
    def expires_on(self) -> Optional[datetime]:
        if self.local_expires_on is None:
            return None
        return self.local_expires_on.replace(tzinfo=self.zone)

    def is_expired(self, now: datetime) -> bool:
        expires_on = self.expires_on
        return expires_on is not None and expires_on < now

    def status(self, now: datetime) -> str:
        if self.finished_on is not None:
            return STATUS_FINISHED
        if self.started_on is not None:
            return STATUS_STARTED
        if self.is_expired(now):
            return STATUS_EXPIRED
        if self.scheduled_on > now:
            return STATUS_SCHEDULED
        return STATUS_AVAILABLE


class ScheduledActivityUpdate(CamelModel):
    guid: Optional[str] = None
    started_on: Optional[datetime] = None
    finished_on: Optional[datetime] = None

    @field_validator("started_on", "finished_on")
    @classmethod
    def _aware_lifecycle(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _utc(v) if v is not None else None


class UpdateResult(CamelModel):
    guid: Optional[str] = None
    accepted: bool
    reason: Optional[str] = None


class ScheduledActivityOut(CamelModel):
    guid: str
    schedule_plan_guid: Optional[str] = None
    scheduled_on: datetime
    expires_on: Optional[datetime] = None
    activity: Activity
    persistent: bool
    status: str
    started_on: Optional[datetime] = None
    finished_on: Optional[datetime] = None

    @classmethod
    def from_activity(cls, activity: ScheduledActivity, now: datetime) -> "ScheduledActivityOut":
        return cls(
            guid=activity.guid,
            schedule_plan_guid=activity.schedule_plan_guid,
            scheduled_on=activity.scheduled_on,
            expires_on=activity.expires_on,
            activity=activity.activity,
            persistent=activity.persistent,
            status=activity.status(now),
            started_on=activity.started_on,
            finished_on=activity.finished_on,
        )


class ScheduledActivityListOut(CamelModel):
    items: List[ScheduledActivityOut]
    total: int
