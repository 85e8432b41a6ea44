from .schedules import (
    Activity,
    CompoundActivityReference,
    Criteria,
    CriteriaScheduleStrategy,
    Schedule,
    ScheduleCriteria,
    ScheduleGroup,
    SchedulePlan,
    SimpleScheduleStrategy,
    SurveyReference,
    TaskReference,
    WeightedGroupScheduleStrategy,
)
from .activities import (
    ClientInfo,
    ScheduleContext,
    ScheduledActivity,
    ScheduledActivityListOut,
    ScheduledActivityOut,
    ScheduledActivityUpdate,
    UpdateResult,
)

__all__ = [
    "Activity",
    "ClientInfo",
    "CompoundActivityReference",
    "Criteria",
    "CriteriaScheduleStrategy",
    "Schedule",
    "ScheduleContext",
    "ScheduleCriteria",
    "ScheduleGroup",
    "SchedulePlan",
    "ScheduledActivity",
    "ScheduledActivityListOut",
    "ScheduledActivityOut",
    "ScheduledActivityUpdate",
    "SimpleScheduleStrategy",
    "SurveyReference",
    "TaskReference",
    "UpdateResult",
    "WeightedGroupScheduleStrategy",
]
