from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from auth import create_access_token
from main import app
from routers.activities import _parse_languages, get_activity_service
from schemas import Criteria, Schedule
from tests.fakes import STUDY_ID, FakeActivityStore, make_service, simple_plan, task


@pytest.fixture
def store():
    return FakeActivityStore()


@pytest.fixture
def client(store):
    plans = [
        simple_plan("welcome", Schedule(schedule_type="once", activities=[task("intro", label="Introduction")])),
        simple_plan("follow-up", Schedule(schedule_type="once", delay=timedelta(days=2), activities=[task("check")])),
        simple_plan(
            "german-only",
            Schedule(schedule_type="once", activities=[task("umfrage")]),
            criteria=Criteria(language="de"),
        ),
    ]
    service = make_service(plans, store=store)
    app.dependency_overrides[get_activity_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _headers(**claims):
    payload = {
        "sub": "participant-9",
        "study": STUDY_ID,
        "createdOn": (datetime.now(timezone.utc) - timedelta(days=1)).isoformat(),
        "dataGroups": ["test_user"],
    }
    payload.update(claims)
    return {"Authorization": f"Bearer {create_access_token(payload)}"}


def test_lists_activities_in_order(client):
    response = client.get("/api/v3/activities", headers=_headers())
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [item["schedulePlanGuid"] for item in body["items"]] == ["welcome", "follow-up"]
    assert [item["status"] for item in body["items"]] == ["available", "scheduled"]
    assert body["items"][0]["activity"]["label"] == "Introduction"


def test_language_criteria_follow_accept_language(client):
    headers = {**_headers(), "Accept-Language": "de-DE,de;q=0.9,en;q=0.8"}
    body = client.get("/api/v3/activities", headers=headers).json()
    assert body["total"] == 3


def test_requires_a_valid_token(client):
    assert client.get("/api/v3/activities").status_code == 401
    bad = client.get("/api/v3/activities", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401
    no_study = {"Authorization": f"Bearer {create_access_token({'sub': 'p', 'createdOn': '2024-06-10T10:00:00Z'})}"}
    assert client.get("/api/v3/activities", headers=no_study).status_code == 401


def test_unknown_timezone_is_rejected(client):
    response = client.get("/api/v3/activities", params={"tz": "Mars/Olympus"}, headers=_headers())
    assert response.status_code == 400
    assert "Unknown timezone" in response.json()["detail"]


def test_window_too_long_is_rejected(client):
    response = client.get("/api/v3/activities", params={"daysAhead": 30}, headers=_headers())
    assert response.status_code == 400
    assert response.json()["detail"] == "endsOn cannot be more than 5 days in the future"


def test_window_in_the_past_is_rejected(client):
    response = client.get("/api/v3/activities", params={"until": "2020-01-01T00:00:00Z"}, headers=_headers())
    assert response.status_code == 400
    assert response.json()["detail"] == "endsOn must be in the future"


def test_updates_return_result_per_item(client, store):
    headers = _headers()
    items = client.get("/api/v3/activities", headers=headers).json()["items"]
    guid = items[0]["guid"]
    started = datetime.now(timezone.utc).isoformat()

    response = client.post(
        "/api/v3/activities",
        json=[{"guid": guid, "startedOn": started}, {"startedOn": started}, {"guid": "nope", "startedOn": started}],
        headers=headers,
    )
    assert response.status_code == 200
    assert [(r["guid"], r["accepted"]) for r in response.json()] == [(guid, True), (None, False), ("nope", False)]
    assert store.rows[("participant-9", guid)].started_on is not None

    after = client.get("/api/v3/activities", headers=headers).json()["items"]
    assert after[0]["status"] == "started"


def test_delete_removes_participant_activities(client, store):
    headers = _headers()
    client.get("/api/v3/activities", headers=headers)
    response = client.delete("/api/v3/activities", headers=headers)
    assert response.json() == {"participant_id": "participant-9", "deleted": 2}
    assert store.rows == {}


def test_accept_language_parsing():
    assert _parse_languages("en-US,de;q=0.9,fr;q=0.95,en-GB;q=0.5") == ["en", "fr", "de"]
    assert _parse_languages(None) == []
    assert _parse_languages("*") == []
