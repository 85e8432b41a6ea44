# schemas/schedules.py
from __future__ import annotations
from datetime import datetime, time, timedelta, timezone
from typing import Annotated, Dict, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ENROLLMENT_EVENT = "enrollment"

ActivityType = Literal["task", "survey", "compound"]
ScheduleType = Literal["once", "recurring"]


class CamelModel(BaseModel):
    """Documents are stored and served in camelCase; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskReference(CamelModel):
    identifier: str


class SurveyReference(CamelModel):
    identifier: Optional[str] = None
    guid: str
    # A reference without createdOn floats to the most recently published version.
    created_on: Optional[datetime] = None

    @field_validator("created_on")
    @classmethod
    def _aware_created_on(cls, v: Optional[datetime]) -> Optional[datetime]:
        return v.replace(tzinfo=timezone.utc) if v is not None and v.tzinfo is None else v

    @property
    def pinned(self) -> bool:
        return self.created_on is not None


class CompoundActivityReference(CamelModel):
    task_identifier: str


class Activity(CamelModel):
    guid: str
    label: str = ""
    label_detail: Optional[str] = None
    activity_type: ActivityType = "task"
    task: Optional[TaskReference] = None
    survey: Optional[SurveyReference] = None
    compound_activity: Optional[CompoundActivityReference] = None

    @model_validator(mode="after")
    def _reference_matches_type(self) -> "Activity":
        reference = {
            "task": self.task,
            "survey": self.survey,
            "compound": self.compound_activity,
        }[self.activity_type]
        if reference is None:
            raise ValueError(f"activity of type '{self.activity_type}' requires a {self.activity_type} reference")
        return self


class Criteria(CamelModel):
    # Keyed by OS name as reported in the User-Agent, e.g. "iPhone OS", "Android".
    min_app_versions: Dict[str, int] = Field(default_factory=dict)
    max_app_versions: Dict[str, int] = Field(default_factory=dict)
    all_of_groups: Set[str] = Field(default_factory=set)
    none_of_groups: Set[str] = Field(default_factory=set)
    language: Optional[str] = None


class Schedule(CamelModel):
    label: Optional[str] = None
    schedule_type: ScheduleType = "once"
    # May list fallbacks: "custom:surgery,enrollment" uses the first event present.
    event_id: Optional[str] = ENROLLMENT_EVENT
    interval: Optional[timedelta] = None
    cron_trigger: Optional[str] = None
    delay: Optional[timedelta] = None
    expires: Optional[timedelta] = None
    times: List[time] = Field(default_factory=list)
    persistent: bool = False
    activities: List[Activity] = Field(default_factory=list)

    @field_validator("schedule_type", mode="before")
    @classmethod
    def _lower_schedule_type(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("times")
    @classmethod
    def _naive_times(cls, v: List[time]) -> List[time]:
        return sorted({t.replace(tzinfo=None) for t in v})

    @property
    def event_ids(self) -> List[str]:
        raw = self.event_id or ENROLLMENT_EVENT
        return [e.strip() for e in raw.split(",") if e.strip()]


class SimpleScheduleStrategy(CamelModel):
    type: Literal["SimpleScheduleStrategy"] = "SimpleScheduleStrategy"
    schedule: Schedule


class ScheduleGroup(CamelModel):
    weight: int
    schedule: Schedule


class WeightedGroupScheduleStrategy(CamelModel):
    type: Literal["WeightedGroupScheduleStrategy"] = "WeightedGroupScheduleStrategy"
    groups: List[ScheduleGroup] = Field(default_factory=list)


class ScheduleCriteria(CamelModel):
    criteria: Criteria = Field(default_factory=Criteria)
    schedule: Schedule


class CriteriaScheduleStrategy(CamelModel):
    type: Literal["CriteriaScheduleStrategy"] = "CriteriaScheduleStrategy"
    schedule_criteria: List[ScheduleCriteria] = Field(default_factory=list)


ScheduleStrategy = Annotated[
    Union[SimpleScheduleStrategy, WeightedGroupScheduleStrategy, CriteriaScheduleStrategy],
    Field(discriminator="type"),
]


class SchedulePlan(CamelModel):
    guid: str
    study_id: str
    label: Optional[str] = None
    version: Optional[int] = None
    modified_on: Optional[datetime] = None
    # Plan-level eligibility, checked before the strategy picks a schedule.
    criteria: Optional[Criteria] = None
    strategy: ScheduleStrategy
