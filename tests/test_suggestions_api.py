from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from study_scheduler.db import Base
from study_scheduler.db.deps import get_db
from study_scheduler.db.models.assignment import Assignment
from study_scheduler.db.models.availability_block import AvailabilityBlock
from study_scheduler.db.models.course import Course
from study_scheduler.db.models.planned_task import PlannedTask
from study_scheduler.db.models.schedule_action_log import ScheduleActionLog
from study_scheduler.db.models.schedule_suggestion import ScheduleSuggestion
from study_scheduler.db.models.user import User
from study_scheduler.main import app
from study_scheduler.services import suggestion_actions, suggestion_generator

MONDAY = "2026-10-19"


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


def _headers(user_id: UUID) -> dict:
    return {"X-User-Id": str(user_id)}


def _seed_user(session_factory, *, with_block: bool = True) -> UUID:
    with session_factory() as db:
        user_id = uuid4()
        db.add(User(id=user_id))
        db.flush()
        if with_block:
            db.add(
                AvailabilityBlock(
                    user_id=user_id,
                    day_of_week=2,
                    available_start=time(15, 0),
                    available_end=time(17, 0),
                    block_type="study",
                    label="Library",
                )
            )
        db.commit()
        return user_id


def _seed_assignment(
    session_factory,
    user_id: UUID,
    title: str = "Essay",
    minutes: int = 90,
    due: datetime | None = datetime(2026, 10, 23, 23, 59),
    status: str = "pending",
    course_name: str | None = None,
) -> UUID:
    with session_factory() as db:
        course_id = None
        if course_name:
            course = Course(user_id=user_id, name=course_name)
            db.add(course)
            db.flush()
            course_id = course.id
        assignment = Assignment(
            user_id=user_id,
            course_id=course_id,
            title=title,
            estimated_duration=minutes,
            due_date=due,
            priority="medium",
            status=status,
        )
        db.add(assignment)
        db.commit()
        return assignment.id


def _generate(test_client: TestClient, user_id: UUID, **body):
    return test_client.post("/schedule/generate", json={"start_date": MONDAY, **body}, headers=_headers(user_id))


def _resolve(test_client: TestClient, user_id: UUID, action: str, suggestion_id=None):
    payload = {"action": action}
    if suggestion_id is not None:
        payload["suggestion_id"] = str(suggestion_id)
    return test_client.post("/schedule/suggestions/resolve", json=payload, headers=_headers(user_id))


def _count(session_factory, model, **filters) -> int:
    with session_factory() as db:
        return db.query(model).filter_by(**filters).count()


def test_generate_requires_authenticated_user(client):
    test_client, _ = client
    assert test_client.post("/schedule/generate", json={}).status_code == 401
    assert test_client.post("/schedule/generate", json={}, headers={"X-User-Id": "nope"}).status_code == 401


def test_generate_without_availability_needs_setup(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory, with_block=False)
    _seed_assignment(session_factory, user_id)

    response = _generate(test_client, user_id)

    assert response.status_code == 400
    assert response.json()["detail"]["needs_setup"] is True
    assert _count(session_factory, ScheduleSuggestion) == 0


def test_generate_with_no_open_assignments_returns_empty_list(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id, status="completed")

    response = _generate(test_client, user_id)

    assert response.status_code == 200
    body = response.json()
    assert body["suggestions"] == []
    assert body["message"] == "No pending assignments to schedule"


def test_generate_accept_then_pending_list_is_empty(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    assignment_id = _seed_assignment(session_factory, user_id, course_name="History 101")

    response = _generate(test_client, user_id)
    assert response.status_code == 200
    suggestions = response.json()["suggestions"]
    assert len(suggestions) == 1
    suggestion = suggestions[0]
    assert suggestion["assignment_id"] == str(assignment_id)
    assert suggestion["suggested_date"] == "2026-10-20"
    assert suggestion["suggested_start"] == "15:00:00"
    assert suggestion["suggested_end"] == "16:30:00"
    assert suggestion["status"] == "pending"
    assert "Fri Oct 23" in suggestion["reason"]

    pending = test_client.get("/schedule/suggestions", headers=_headers(user_id)).json()["suggestions"]
    assert [p["id"] for p in pending] == [suggestion["id"]]
    assert pending[0]["assignment"]["title"] == "Essay"
    assert pending[0]["assignment"]["course_name"] == "History 101"

    accept = _resolve(test_client, user_id, "accept", suggestion["id"])
    assert accept.status_code == 200
    accepted = accept.json()
    assert accepted["changed"] is True
    assert len(accepted["tasks_created"]) == 1
    task = accepted["tasks_created"][0]
    assert task["scheduled_date"] == "2026-10-20"
    assert (task["scheduled_start"], task["scheduled_end"]) == ("15:00:00", "16:30:00")
    assert task["ai_generated"] is True
    assert task["completed"] is False
    assert task["notes"] == suggestion["reason"]
    assert task["assignment_title"] == "Essay"

    assert test_client.get("/schedule/suggestions", headers=_headers(user_id)).json()["suggestions"] == []
    with session_factory() as db:
        stored = db.get(ScheduleSuggestion, UUID(suggestion["id"]))
        assert stored.status == "accepted"
        assert stored.resolved_at is not None
        assert db.query(PlannedTask).filter_by(user_id=user_id).count() == 1


def test_regenerating_does_not_duplicate_pending_suggestions(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id)

    first = _generate(test_client, user_id).json()
    second = _generate(test_client, user_id).json()

    assert len(first["suggestions"]) == 1
    assert second["suggestions"] == []
    assert second["already_offered"] == 1
    assert _count(session_factory, ScheduleSuggestion, status="pending") == 1


def test_new_assignment_is_placed_around_pending_suggestions(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id, title="Essay", minutes=60)
    _generate(test_client, user_id)
    _seed_assignment(session_factory, user_id, title="Quiz", minutes=60, due=datetime(2026, 10, 21, 9, 0))

    created = _generate(test_client, user_id).json()["suggestions"]

    assert len(created) == 1
    assert (created[0]["suggested_date"], created[0]["suggested_start"]) == ("2026-10-20", "16:00:00")


def test_generation_avoids_existing_planned_tasks(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id, minutes=60)
    with session_factory() as db:
        db.add(
            PlannedTask(
                user_id=user_id,
                scheduled_date=date(2026, 10, 20),
                scheduled_start=time(15, 0),
                scheduled_end=time(16, 0),
                title="Group meeting",
            )
        )
        db.commit()

    suggestion = _generate(test_client, user_id).json()["suggestions"][0]

    assert (suggestion["suggested_start"], suggestion["suggested_end"]) == ("16:00:00", "17:00:00")


def test_unplaceable_assignments_are_reported_not_failed(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    too_long = _seed_assignment(session_factory, user_id, title="Thesis", minutes=300)

    body = _generate(test_client, user_id).json()

    assert body["suggestions"] == []
    assert body["unscheduled_assignment_ids"] == [str(too_long)]


def test_dismiss_leaves_ledger_untouched(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id)
    suggestion_id = _generate(test_client, user_id).json()["suggestions"][0]["id"]

    response = _resolve(test_client, user_id, "dismiss", suggestion_id)

    assert response.status_code == 200
    assert response.json()["tasks_created"] == []
    assert _count(session_factory, PlannedTask) == 0
    assert _count(session_factory, ScheduleSuggestion, status="dismissed") == 1


def test_terminal_suggestions_are_never_reopened(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id)
    suggestion_id = _generate(test_client, user_id).json()["suggestions"][0]["id"]

    assert _resolve(test_client, user_id, "accept", suggestion_id).json()["changed"] is True
    again = _resolve(test_client, user_id, "accept", suggestion_id)
    dismissed = _resolve(test_client, user_id, "dismiss", suggestion_id)

    assert again.status_code == 200 and again.json()["changed"] is False
    assert dismissed.status_code == 200 and dismissed.json()["changed"] is False
    assert _count(session_factory, PlannedTask) == 1
    assert _count(session_factory, ScheduleSuggestion, status="accepted") == 1


def test_other_users_suggestion_is_not_found(client):
    test_client, session_factory = client
    owner = _seed_user(session_factory)
    _seed_assignment(session_factory, owner)
    suggestion_id = _generate(test_client, owner).json()["suggestions"][0]["id"]
    intruder = _seed_user(session_factory)

    assert _resolve(test_client, intruder, "accept", suggestion_id).status_code == 404
    assert _resolve(test_client, intruder, "dismiss", uuid4()).status_code == 404
    assert _count(session_factory, ScheduleSuggestion, status="pending") == 1


def test_malformed_actions_are_rejected(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)

    assert _resolve(test_client, user_id, "approve", uuid4()).status_code == 422
    assert _resolve(test_client, user_id, "accept").status_code == 422
    assert _resolve(test_client, user_id, "accept", "bulk").status_code == 422


def test_accept_all_matches_individual_accepts(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id, title="Essay", minutes=60)
    _seed_assignment(session_factory, user_id, title="Quiz", minutes=45, due=datetime(2026, 10, 21))
    created = _generate(test_client, user_id).json()["suggestions"]
    assert len(created) == 2

    response = _resolve(test_client, user_id, "acceptAll", "bulk")

    assert response.status_code == 200
    body = response.json()
    assert body["changed"] is True
    assert sorted(body["suggestion_ids"]) == sorted(s["id"] for s in created)
    tasks = body["tasks_created"]
    assert [(t["scheduled_start"], t["scheduled_end"]) for t in tasks] == [
        ("15:00:00", "15:45:00"),
        ("15:45:00", "16:45:00"),
    ]
    assert all(t["ai_generated"] for t in tasks)
    assert _count(session_factory, ScheduleSuggestion, status="pending") == 0

    repeat = _resolve(test_client, user_id, "acceptAll")
    assert repeat.json()["changed"] is False
    assert _count(session_factory, PlannedTask) == 2


def test_accept_then_accept_all_creates_one_task_per_suggestion(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id, title="Essay", minutes=60)
    _seed_assignment(session_factory, user_id, title="Quiz", minutes=45)
    created = _generate(test_client, user_id).json()["suggestions"]

    _resolve(test_client, user_id, "accept", created[0]["id"])
    bulk = _resolve(test_client, user_id, "acceptAll").json()

    assert bulk["suggestion_ids"] == [created[1]["id"]]
    assert _count(session_factory, PlannedTask) == 2


def test_dismiss_all_only_touches_pending(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id, title="Essay", minutes=60)
    _seed_assignment(session_factory, user_id, title="Quiz", minutes=45)
    created = _generate(test_client, user_id).json()["suggestions"]
    _resolve(test_client, user_id, "accept", created[0]["id"])

    response = _resolve(test_client, user_id, "dismissAll")

    assert response.status_code == 200
    assert response.json()["suggestion_ids"] == [created[1]["id"]]
    assert _count(session_factory, ScheduleSuggestion, status="accepted") == 1
    assert _count(session_factory, ScheduleSuggestion, status="dismissed") == 1
    assert _count(session_factory, PlannedTask) == 1


def test_failed_task_insert_keeps_suggestion_pending(client, monkeypatch):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id)
    suggestion_id = _generate(test_client, user_id).json()["suggestions"][0]["id"]

    def broken_task(owner_id, suggestion):
        # Violates the start < end check constraint on insert.
        return PlannedTask(
            user_id=owner_id,
            assignment_id=suggestion.assignment_id,
            scheduled_date=suggestion.suggested_date,
            scheduled_start=time(12, 0),
            scheduled_end=time(12, 0),
            ai_generated=True,
        )

    monkeypatch.setattr(suggestion_actions, "_task_from_suggestion", broken_task)

    response = _resolve(test_client, user_id, "accept", suggestion_id)

    assert response.status_code == 500
    assert _count(session_factory, PlannedTask) == 0
    assert _count(session_factory, ScheduleSuggestion, status="pending") == 1


def test_actions_are_written_to_the_audit_log(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id)
    suggestion_id = _generate(test_client, user_id).json()["suggestions"][0]["id"]
    _resolve(test_client, user_id, "accept", suggestion_id)

    with session_factory() as db:
        action_types = [log.action_type for log in db.query(ScheduleActionLog).filter_by(user_id=user_id)]
    assert "schedule_suggestions_generated" in action_types
    assert "schedule_suggestion_accepted" in action_types


def _book(test_client: TestClient, user_id: UUID, day: str, start: str, end: str):
    response = test_client.post(
        "/planned-tasks",
        json={"scheduled_date": day, "scheduled_start": start, "scheduled_end": end, "title": "Club meeting"},
        headers=_headers(user_id),
    )
    assert response.status_code == 201
    return response.json()


def _assert_ledger_has_no_overlaps(session_factory, user_id: UUID) -> None:
    with session_factory() as db:
        tasks = db.query(PlannedTask).filter_by(user_id=user_id).all()
    for i, first in enumerate(tasks):
        for second in tasks[i + 1:]:
            if first.scheduled_date == second.scheduled_date:
                assert (
                    first.scheduled_end <= second.scheduled_start or second.scheduled_end <= first.scheduled_start
                ), f"{first.scheduled_start}-{first.scheduled_end} overlaps {second.scheduled_start}-{second.scheduled_end}"


def test_regenerate_retires_suggestion_whose_slot_was_booked(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    assignment_id = _seed_assignment(session_factory, user_id)
    stale = _generate(test_client, user_id).json()["suggestions"][0]
    _book(test_client, user_id, "2026-10-20", "15:00", "16:00")

    body = _generate(test_client, user_id).json()

    assert body["retired_suggestion_ids"] == [stale["id"]]
    assert [(s["suggested_date"], s["suggested_start"]) for s in body["suggestions"]] == [("2026-10-27", "15:00:00")]
    pending = test_client.get("/schedule/suggestions", headers=_headers(user_id)).json()["suggestions"]
    assert [p["assignment_id"] for p in pending] == [str(assignment_id)]

    accepted = _resolve(test_client, user_id, "acceptAll").json()

    assert len(accepted["tasks_created"]) == 1
    assert accepted["skipped_ids"] == []
    _assert_ledger_has_no_overlaps(session_factory, user_id)
    assert _count(session_factory, PlannedTask, assignment_id=assignment_id) == 1
    assert _count(session_factory, ScheduleSuggestion, status="dismissed") == 1


def test_accept_skips_suggestion_whose_slot_was_booked(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id)
    suggestion_id = _generate(test_client, user_id).json()["suggestions"][0]["id"]
    _book(test_client, user_id, "2026-10-20", "16:00", "17:00")

    response = _resolve(test_client, user_id, "accept", suggestion_id)

    assert response.status_code == 200
    body = response.json()
    assert body["tasks_created"] == []
    assert body["suggestion_ids"] == []
    assert body["skipped_ids"] == [suggestion_id]
    assert _count(session_factory, PlannedTask) == 1
    assert test_client.get("/schedule/suggestions", headers=_headers(user_id)).json()["suggestions"] == []
    with session_factory() as db:
        assert db.get(ScheduleSuggestion, UUID(suggestion_id)).status == "dismissed"


def test_accept_all_skips_suggestions_overlapping_the_ledger(client):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id, title="Essay", minutes=60)
    _seed_assignment(session_factory, user_id, title="Quiz", minutes=45)
    essay, quiz = _generate(test_client, user_id).json()["suggestions"]
    assert (quiz["suggested_start"], quiz["suggested_end"]) == ("16:00:00", "16:45:00")
    _book(test_client, user_id, "2026-10-20", "16:30", "17:00")

    body = _resolve(test_client, user_id, "acceptAll").json()

    assert body["suggestion_ids"] == [essay["id"]]
    assert body["skipped_ids"] == [quiz["id"]]
    assert [t["scheduled_start"] for t in body["tasks_created"]] == ["15:00:00"]
    _assert_ledger_has_no_overlaps(session_factory, user_id)
    assert _count(session_factory, ScheduleSuggestion, status="pending") == 0


def test_generate_without_start_date_starts_from_now(client, monkeypatch):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    _seed_assignment(session_factory, user_id, minutes=60)
    monkeypatch.setattr(suggestion_generator, "_local_now", lambda: datetime(2026, 10, 20, 15, 20))

    response = test_client.post("/schedule/generate", json={}, headers=_headers(user_id))

    assert response.status_code == 200
    suggestion = response.json()["suggestions"][0]
    assert (suggestion["suggested_date"], suggestion["suggested_start"]) == ("2026-10-20", "15:20:00")
