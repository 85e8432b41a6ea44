from datetime import datetime
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON
from typing import Any, Dict, Optional

Base = SQLModel  # Define Base as SQLModel

class ScheduledActivityRecord(Base, table=True):
    __tablename__ = "scheduled_activities"

    participant_id: str = Field(primary_key=True)
    guid: str = Field(primary_key=True)
    schedule_plan_guid: Optional[str] = Field(default=None, index=True)
    time_zone: str = Field(default="UTC", nullable=False)
    # Wall-clock time in time_zone, stored without offset.
    local_scheduled_on: datetime = Field(nullable=False)
    local_expires_on: Optional[datetime] = None
    activity: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    persistent: bool = Field(default=False, nullable=False)
    # UTC instants, stored without offset.
    started_on: Optional[datetime] = None
    finished_on: Optional[datetime] = None
    version: int = Field(default=1, nullable=False)
