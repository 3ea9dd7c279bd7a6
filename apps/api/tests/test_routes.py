from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional

from fastapi.testclient import TestClient

from kidhub.config import AppConfig
from kidhub.main import create_app

from .helpers import (
    GUARDIAN_ID,
    ORGANIZER_ID,
    FakeAuth,
    FakeSupabase,
    guardian_row,
    guardian_user,
    make_store,
    organizer_row,
    organizer_user,
)

CONFIG = AppConfig(supabase_url="https://project.supabase.co", supabase_anon_key="anon-key")


def _activity(activity_id: str = "act-1", **overrides) -> dict:
    row = {
        "id": activity_id,
        "title": "Junior Chess",
        "description": "Openings and tactics",
        "category": "Education",
        "location": "Sofia Library",
        "capacity": 1,
        "status": "active",
        "organizer_id": ORGANIZER_ID,
    }
    row.update(overrides)
    return row


def _tables() -> dict:
    return {
        "guardians": [guardian_row()],
        "organizers": [organizer_row()],
        "children": [
            {"id": "c1", "guardian_id": GUARDIAN_ID, "first_name": "Ana", "created_at": "2024-01-01T00:00:00+00:00"},
        ],
        "activities": [_activity(), _activity("act-2", status="draft", title="Draft Camp")],
        "enrollments": [],
        "reviews": [],
    }


@contextmanager
def api_client(
    auth: FakeAuth,
    supabase: Optional[FakeSupabase] = None,
    redirects: Optional[List[str]] = None,
) -> Iterator[TestClient]:
    redirects = redirects if redirects is not None else []
    supabase = supabase or FakeSupabase(tables=_tables())
    store = make_store(auth, supabase, redirects=redirects)
    app = create_app(config=CONFIG, store=store, redirects=redirects)
    with TestClient(app) as client:
        client.get("/api/v1/auth/session")
        yield client


def _guardian_auth() -> FakeAuth:
    return FakeAuth(user=guardian_user(), signed_in=True, passwords={"sarah@example.com": "secret"})


def _organizer_auth() -> FakeAuth:
    return FakeAuth(user=organizer_user(), signed_in=True)


def test_health_reports_demo_flag() -> None:
    with api_client(FakeAuth()) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "demo": False}


def test_session_for_signed_in_guardian() -> None:
    with api_client(_guardian_auth()) as client:
        body = client.get("/api/v1/auth/session").json()

    assert body["isAuthenticated"] is True
    assert body["isLoading"] is False
    assert body["userType"] == "guardian"
    assert body["user"]["firstName"] == "Sarah"
    assert body["user"]["phone"] == "0898788555"
    assert body["user"]["children"][0]["firstName"] == "Ana"
    assert body["redirectTo"] is None


def test_anonymous_session() -> None:
    with api_client(FakeAuth()) as client:
        body = client.get("/api/v1/auth/session").json()
        profile = client.get("/api/v1/profile")

    assert body["isAuthenticated"] is False
    assert body["user"] is None
    assert body["isLoading"] is False
    assert profile.status_code == 401


def test_bad_credentials_return_error_code() -> None:
    auth = FakeAuth(user=guardian_user(), passwords={"sarah@example.com": "secret"})
    with api_client(auth) as client:
        response = client.post(
            "/api/v1/auth/sign-in",
            json={"email": "sarah@example.com", "password": "wrong"},
        )
        session = client.get("/api/v1/auth/session").json()

    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid login credentials", "code": "invalid_credentials"}
    assert session["isLoading"] is False
    assert session["isAuthenticated"] is False


def test_sign_in_returns_populated_session() -> None:
    auth = FakeAuth(user=guardian_user(), passwords={"sarah@example.com": "secret"})
    with api_client(auth) as client:
        response = client.post(
            "/api/v1/auth/sign-in",
            json={"email": " sarah@example.com ", "password": "secret"},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["isAuthenticated"] is True
    assert body["user"]["id"] == GUARDIAN_ID


def test_sign_up_organizer() -> None:
    auth = FakeAuth()
    supabase = FakeSupabase(tables={"organizers": []})
    with api_client(auth, supabase) as client:
        response = client.post(
            "/api/v1/auth/sign-up",
            json={
                "email": "club@example.com",
                "password": "pass1234",
                "userData": {"userType": "organizer", "organizationName": "Sofia Sports Club"},
            },
        )

    assert response.status_code == 200
    body = response.json()
    assert body["userType"] == "organizer"
    assert body["user"]["organizationName"] == "Sofia Sports Club"
    assert supabase.tables["organizers"][0]["organization_name"] == "Sofia Sports Club"


def test_sign_out_reports_login_redirect() -> None:
    with api_client(_guardian_auth()) as client:
        response = client.post("/api/v1/auth/sign-out")
        after = client.get("/api/v1/auth/session").json()

    body = response.json()
    assert response.status_code == 200
    assert body["isAuthenticated"] is False
    assert body["user"] is None
    assert body["redirectTo"] == "/login"
    assert after["redirectTo"] is None


def test_activities_list_only_active() -> None:
    with api_client(FakeAuth()) as client:
        response = client.get("/api/v1/activities", params={"category": "All Events"})
        missing = client.get("/api/v1/activities/nope")

    assert response.status_code == 200
    rows = response.json()
    assert [row["id"] for row in rows] == ["act-1"]
    assert rows[0]["organizerId"] == ORGANIZER_ID
    assert rows[0]["ageGroup"] == ""
    assert missing.status_code == 404


def test_guardian_cannot_create_activity() -> None:
    with api_client(_guardian_auth()) as client:
        response = client.post("/api/v1/activities", json={"title": "Football"})
    assert response.status_code == 403


def test_organizer_manages_own_activity() -> None:
    supabase = FakeSupabase(tables=_tables())
    with api_client(_organizer_auth(), supabase) as client:
        created = client.post(
            "/api/v1/activities",
            json={"title": "Football", "capacity": 12, "status": "active", "ageGroup": "6-9"},
        )
        activity_id = created.json()["id"]
        patched = client.patch(f"/api/v1/activities/{activity_id}", json={"title": "Football U9"})
        empty = client.patch(f"/api/v1/activities/{activity_id}", json={})
        deleted = client.delete(f"/api/v1/activities/{activity_id}")

    assert created.status_code == 200
    assert created.json()["organizerId"] == ORGANIZER_ID
    assert created.json()["ageGroup"] == "6-9"
    assert patched.json()["title"] == "Football U9"
    assert empty.status_code == 400
    assert deleted.json() == {"deleted": True}
    assert all(row["id"] != activity_id for row in supabase.tables["activities"])


def test_organizer_cannot_edit_foreign_activity() -> None:
    tables = _tables()
    tables["activities"].append(_activity("act-foreign", organizer_id="another-org"))
    with api_client(_organizer_auth(), FakeSupabase(tables=tables)) as client:
        response = client.patch("/api/v1/activities/act-foreign", json={"title": "Mine now"})
    assert response.status_code == 403


def test_enrollment_in_full_activity_conflicts() -> None:
    tables = _tables()
    tables["enrollments"].append(
        {"id": "e-1", "activity_id": "act-1", "child_id": "other", "guardian_id": "other", "status": "confirmed"}
    )
    with api_client(_guardian_auth(), FakeSupabase(tables=tables)) as client:
        response = client.post("/api/v1/enrollments", json={"activityId": "act-1", "childId": "c1"})

    assert response.status_code == 409
    assert response.json()["detail"] == "This activity has reached its capacity"


def test_enrollment_for_unknown_child_is_rejected() -> None:
    with api_client(_guardian_auth()) as client:
        response = client.post("/api/v1/enrollments", json={"activityId": "act-1", "childId": "not-mine"})
    assert response.status_code == 400


def test_guardian_enrolls_and_cancels() -> None:
    supabase = FakeSupabase(tables=_tables())
    with api_client(_guardian_auth(), supabase) as client:
        created = client.post(
            "/api/v1/enrollments",
            json={
                "activityId": "act-1",
                "childId": "c1",
                "emergencyContact": {"name": "Grandma", "phone": "0877000111"},
            },
        )
        enrollment_id = created.json()["id"]
        cancelled = client.post(f"/api/v1/enrollments/{enrollment_id}/cancel")

    assert created.status_code == 200
    assert created.json()["status"] == "confirmed"
    assert created.json()["paymentStatus"] == "unpaid"
    assert created.json()["emergencyContact"]["phone"] == "+359877000111"
    assert cancelled.json()["status"] == "cancelled"


def test_organizer_updates_payment_only_for_own_activity() -> None:
    tables = _tables()
    tables["enrollments"] = [
        {
            "id": "e-own",
            "activity_id": "act-1",
            "child_id": "c1",
            "guardian_id": GUARDIAN_ID,
            "status": "confirmed",
            "activities": {"id": "act-1", "organizer_id": ORGANIZER_ID},
        },
        {
            "id": "e-foreign",
            "activity_id": "act-x",
            "child_id": "c9",
            "guardian_id": GUARDIAN_ID,
            "status": "confirmed",
            "activities": {"id": "act-x", "organizer_id": "another-org"},
        },
    ]
    with api_client(_organizer_auth(), FakeSupabase(tables=tables)) as client:
        own = client.patch("/api/v1/enrollments/e-own/payment", json={"paymentStatus": "paid"})
        foreign = client.patch("/api/v1/enrollments/e-foreign/payment", json={"paymentStatus": "paid"})

    assert own.status_code == 200
    assert own.json()["paymentStatus"] == "paid"
    assert foreign.status_code == 403


def test_review_rating_is_validated() -> None:
    with api_client(_guardian_auth()) as client:
        rejected = client.post("/api/v1/reviews", json={"activityId": "act-1", "rating": 9})
        accepted = client.post("/api/v1/reviews", json={"activityId": "act-1", "rating": 5, "comment": " Fun "})
        listed = client.get("/api/v1/reviews/organizer/" + ORGANIZER_ID)

    assert rejected.status_code == 422
    assert accepted.status_code == 200
    assert accepted.json()["organizerId"] == ORGANIZER_ID
    assert accepted.json()["comment"] == "Fun"
    assert [row["rating"] for row in listed.json()] == [5]


def test_profile_update_refreshes_session_copy() -> None:
    supabase = FakeSupabase(tables=_tables())
    with api_client(_guardian_auth(), supabase) as client:
        response = client.patch("/api/v1/profile", json={"phone": "0877 111 222", "organizationName": "ignored"})
        session = client.get("/api/v1/auth/session").json()

    assert response.status_code == 200
    assert response.json()["phone"] == "0877111222"
    assert "organization_name" not in supabase.tables["guardians"][0]
    assert supabase.tables["guardians"][0]["phone"] == "+359877111222"
    assert session["user"]["phone"] == "0877111222"


def test_child_routes_are_scoped_to_guardian() -> None:
    supabase = FakeSupabase(tables=_tables())
    with api_client(_guardian_auth(), supabase) as client:
        added = client.post("/api/v1/profile/children", json={"firstName": "Mia", "dateOfBirth": "2019-02-03"})
        foreign = client.delete("/api/v1/profile/children/not-mine")
        profile = client.get("/api/v1/profile").json()

    assert added.status_code == 200
    assert added.json()["guardianId"] == GUARDIAN_ID
    assert foreign.status_code == 404
    assert {child["firstName"] for child in profile["children"]} == {"Ana", "Mia"}


def test_activities_with_null_columns_still_list() -> None:
    tables = _tables()
    tables["activities"] = [_activity(registrations=None, is_paid=None, long_description=None)]
    with api_client(FakeAuth(), FakeSupabase(tables=tables)) as client:
        response = client.get("/api/v1/activities")
        detail = client.get("/api/v1/activities/act-1")

    assert response.status_code == 200
    assert response.json()[0]["registrations"] is None
    assert response.json()[0]["isPaid"] is None
    assert detail.status_code == 200


def test_profile_update_rejects_foreign_child_ids() -> None:
    tables = _tables()
    tables["children"].append({"id": "foreign", "guardian_id": "someone-else", "first_name": "Zoe"})
    supabase = FakeSupabase(tables=tables)
    with api_client(_guardian_auth(), supabase) as client:
        edited = client.patch("/api/v1/profile", json={"children": [{"id": "foreign", "firstName": "Zed"}]})
        deleted = client.patch("/api/v1/profile", json={"deletedChildIds": ["foreign"]})
        own = client.patch("/api/v1/profile", json={"children": [{"id": "c1", "firstName": "Anna"}]})

    foreign = next(row for row in supabase.tables["children"] if row["id"] == "foreign")
    assert edited.status_code == 404
    assert deleted.status_code == 404
    assert foreign["guardian_id"] == "someone-else"
    assert foreign["first_name"] == "Zoe"
    assert own.status_code == 200
    assert [child["firstName"] for child in own.json()["children"]] == ["Anna"]
