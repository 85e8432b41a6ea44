# services/criteria.py
from __future__ import annotations
from typing import Optional

from schemas.activities import ClientInfo, ScheduleContext
from schemas.schedules import Criteria


def _primary_subtag(tag: str) -> str:
    return tag.strip().split("-")[0].lower()


def _app_version_in_range(criteria: Criteria, client_info: ClientInfo) -> bool:
    # An unknown client (no OS or no version) is never excluded on version grounds.
    if not client_info.os_name or client_info.app_version is None:
        return True
    version = client_info.app_version
    min_version = criteria.min_app_versions.get(client_info.os_name)
    max_version = criteria.max_app_versions.get(client_info.os_name)
    if min_version is not None and version < min_version:
        return False
    if max_version is not None and version > max_version:
        return False
    return True


def matches(criteria: Optional[Criteria], context: ScheduleContext) -> bool:
    """Decide whether a participant, described by the context, satisfies the criteria.

    Every constraint that is absent is treated as "no constraint", so an empty
    Criteria (or None) matches everyone.
    """
    if criteria is None:
        return True
    if not _app_version_in_range(criteria, context.client_info):
        return False

    groups = context.data_groups
    if not criteria.all_of_groups.issubset(groups):
        return False
    if criteria.none_of_groups & groups:
        return False

    if criteria.language:
        # Compared on primary subtags: "en-US" and "en" are the same language here.
        wanted = _primary_subtag(criteria.language)
        if wanted not in {_primary_subtag(lang) for lang in context.languages}:
            return False
    return True
