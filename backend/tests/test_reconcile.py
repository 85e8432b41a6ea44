from datetime import datetime, timedelta, timezone

from services.reconcile import reconcile
from tests.fakes import scheduled, survey, task

NOW = datetime(2024, 6, 12, 14, 0, tzinfo=timezone.utc)
TOMORROW = datetime(2024, 6, 13, 9, 0)
YESTERDAY = datetime(2024, 6, 11, 9, 0)


def _guids(activities):
    return [a.guid for a in activities]


def test_new_occurrences_are_returned_and_saved():
    fresh = [scheduled("a", TOMORROW), scheduled("b", TOMORROW + timedelta(days=1))]
    result = reconcile(fresh, [], NOW)
    assert _guids(result.activities) == ["a", "b"]
    assert _guids(result.to_save) == ["a", "b"]


def test_new_expired_occurrence_is_not_saved():
    dead = scheduled("a", YESTERDAY, local_expires_on=YESTERDAY + timedelta(hours=1))
    result = reconcile([dead], [], NOW)
    assert _guids(result.activities) == ["a"]
    assert result.to_save == []


def test_persisted_progress_is_preserved():
    started = NOW - timedelta(minutes=5)
    persisted = scheduled("a", TOMORROW, started_on=started).model_copy(update={"version": 3})
    result = reconcile([scheduled("a", TOMORROW)], [persisted], NOW)
    assert result.activities == [persisted]
    assert result.activities[0].started_on == started
    assert result.to_save == []


def test_started_but_expired_persisted_is_kept():
    persisted = scheduled(
        "a", YESTERDAY, started_on=NOW - timedelta(days=1), local_expires_on=YESTERDAY + timedelta(hours=1)
    )
    fresh = scheduled("a", YESTERDAY, local_expires_on=YESTERDAY + timedelta(hours=1))
    result = reconcile([fresh], [persisted], NOW)
    assert result.activities == [persisted]


def test_finished_occurrences_are_excluded():
    persisted = scheduled("a", YESTERDAY, started_on=NOW - timedelta(hours=2), finished_on=NOW - timedelta(hours=1))
    result = reconcile([scheduled("a", YESTERDAY), scheduled("b", TOMORROW)], [persisted], NOW)
    assert _guids(result.activities) == ["b"]
    assert _guids(result.to_save) == ["b"]


def test_persisted_without_fresh_counterpart_is_dropped():
    orphan = scheduled("old", TOMORROW)
    result = reconcile([scheduled("a", TOMORROW)], [orphan], NOW)
    assert _guids(result.activities) == ["a"]
    assert _guids(result.to_save) == ["a"]


def test_mix_of_new_and_persisted():
    persisted = [
        scheduled("a", YESTERDAY, started_on=NOW - timedelta(hours=3)),
        scheduled("b", TOMORROW),
    ]
    fresh = [scheduled("a", YESTERDAY), scheduled("b", TOMORROW), scheduled("c", TOMORROW)]
    result = reconcile(fresh, persisted, NOW)
    assert _guids(result.activities) == ["a", "b", "c"]
    assert result.activities[0].started_on is not None
    assert _guids(result.to_save) == ["c"]


def test_content_drift_refreshes_unstarted_occurrence():
    old = survey("a", "s1", created_on=datetime(2024, 1, 1, tzinfo=timezone.utc))
    new = survey("a", "s1", created_on=datetime(2024, 6, 1, tzinfo=timezone.utc))
    persisted = scheduled("a", TOMORROW, activity=old).model_copy(update={"version": 2})
    result = reconcile([scheduled("a", TOMORROW, activity=new)], [persisted], NOW)
    assert len(result.to_save) == 1
    refreshed = result.to_save[0]
    assert refreshed.guid == "a"
    assert refreshed.activity == new
    # Still based on the stored version, so the store can detect a concurrent write.
    assert refreshed.version == 2
    assert result.activities == [refreshed]


def test_content_drift_ignored_once_started():
    old = survey("a", "s1", created_on=datetime(2024, 1, 1, tzinfo=timezone.utc))
    new = survey("a", "s1", created_on=datetime(2024, 6, 1, tzinfo=timezone.utc))
    persisted = scheduled("a", TOMORROW, activity=old, started_on=NOW - timedelta(minutes=1))
    result = reconcile([scheduled("a", TOMORROW, activity=new)], [persisted], NOW)
    assert result.activities == [persisted]
    assert result.activities[0].activity == old
    assert result.to_save == []


def test_reconciling_again_saves_nothing():
    fresh = [scheduled("a", TOMORROW), scheduled("b", TOMORROW, activity=task("other"))]
    first = reconcile(fresh, [], NOW)
    stored = [a.model_copy(update={"version": 1}) for a in first.to_save]
    second = reconcile(fresh, stored, NOW)
    assert second.to_save == []
    assert _guids(second.activities) == ["a", "b"]
