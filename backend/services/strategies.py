# services/strategies.py
from __future__ import annotations
import hashlib
from typing import List, Optional

from schemas.activities import ScheduleContext
from schemas.schedules import (
    CriteriaScheduleStrategy,
    Schedule,
    ScheduleCriteria,
    ScheduleGroup,
    SchedulePlan,
    SimpleScheduleStrategy,
    WeightedGroupScheduleStrategy,
)
from services.criteria import matches


def group_bucket(participant_id: str, total_weight: int) -> int:
    """Stable bucket in [0, total_weight) for a participant.

    sha256 rather than hash(): the builtin is salted per process.
    """
    digest = hashlib.sha256(participant_id.encode("utf-8")).hexdigest()
    return int(digest, 16) % total_weight


def select_weighted_group(groups: List[ScheduleGroup], participant_id: str) -> Optional[Schedule]:
    # Negative weights are treated as zero; they never own a range.
    weights = [max(0, g.weight) for g in groups]
    total = sum(weights)
    if total <= 0:
        return None

    bucket = group_bucket(participant_id, total)
    upper = 0
    for group, weight in zip(groups, weights):
        upper += weight
        if bucket < upper:
            return group.schedule
    return None


def select_by_criteria(pairs: List[ScheduleCriteria], context: ScheduleContext) -> Optional[Schedule]:
    for pair in pairs:
        if matches(pair.criteria, context):
            return pair.schedule
    return None


def select_schedule(plan: SchedulePlan, context: ScheduleContext) -> Optional[Schedule]:
    """Pick the one schedule of a plan that applies to this participant, if any."""
    strategy = plan.strategy
    if isinstance(strategy, SimpleScheduleStrategy):
        return strategy.schedule
    if isinstance(strategy, WeightedGroupScheduleStrategy):
        return select_weighted_group(strategy.groups, context.participant_id)
    if isinstance(strategy, CriteriaScheduleStrategy):
        return select_by_criteria(strategy.schedule_criteria, context)
    return None
