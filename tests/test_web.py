"""Browser flows through sign-up, the dashboard and logout."""

import re
import sys
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userdesk.accounts import AccountDatabase
from userdesk.config import Settings
from userdesk.service import create_app
from userdesk.store import DocumentStore
from userdesk.web import SESSION_COOKIE_NAME


EMAIL = "owner@example.com"
PASSWORD = "correct-horse"


def _app(tmp_path, **overrides):
    settings = Settings(database_path=tmp_path / "userdesk.sqlite3", **overrides)
    return create_app(settings=settings, store=DocumentStore(settings.database_path))


def _signup(client, email=EMAIL, password=PASSWORD):
    return client.post(
        "/signup",
        data={"email": email, "password": password, "confirm_password": password},
        follow_redirects=False,
    )


def test_anonymous_visitor_is_redirected_to_login(tmp_path):
    app = _app(tmp_path)

    with TestClient(app) as client:
        response = client.get("/", follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

        login = client.get("/login")
        assert login.status_code == 200
        assert "Sign in" in login.text


def test_user_management_flow(tmp_path):
    app = _app(tmp_path)
    service = app.state.user_service

    with TestClient(app) as client:
        signup = _signup(client)
        assert signup.status_code == 303
        assert signup.headers["location"] == "/"
        assert SESSION_COOKIE_NAME in signup.cookies

        dashboard = client.get("/")
        assert dashboard.status_code == 200
        assert f"Welcome, {EMAIL}" in dashboard.text
        assert "No users found." in dashboard.text

        form = client.get("/?new=1")
        assert "Create New User" in form.text

        created = client.post(
            "/dashboard/users",
            data={"name": "Ada", "email": "ada@x.com"},
            follow_redirects=False,
        )
        assert created.status_code == 303

        users = service.list_users()
        assert [(user.name, user.email) for user in users] == [("Ada", "ada@x.com")]
        user_id = users[0].id

        listing = client.get("/")
        assert listing.text.count('data-user-id="') == 1
        assert "ada@x.com" in listing.text
        assert "No users found." not in listing.text

        edit = client.get(f"/?edit={user_id}")
        assert "Edit User" in edit.text
        assert 'value="Ada"' in edit.text

        updated = client.post(
            f"/dashboard/users/{user_id}",
            data={"name": "Ada Lovelace", "email": "ada@x.com"},
            follow_redirects=False,
        )
        assert updated.status_code == 303
        assert service.get_user(user_id).name == "Ada Lovelace"

        confirm = client.get(f"/dashboard/users/{user_id}/delete")
        assert "Are you sure you want to delete this user?" in confirm.text

        declined = client.post(f"/dashboard/users/{user_id}/delete", data={})
        assert declined.status_code == 200
        assert len(service.list_users()) == 1

        deleted = client.post(f"/dashboard/users/{user_id}/delete", data={"confirm": "yes"})
        assert deleted.status_code == 200
        assert "No users found." in deleted.text
        assert service.list_users() == []


def test_invalid_submission_keeps_form_open(tmp_path):
    app = _app(tmp_path)

    with TestClient(app) as client:
        _signup(client)
        response = client.post("/dashboard/users", data={"name": "", "email": "ada@x.com"})

    assert response.status_code == 400
    assert "Name and email are required" in response.text
    assert "Create New User" in response.text
    assert app.state.user_service.list_users() == []


def test_signup_rejects_mismatched_passwords(tmp_path):
    app = _app(tmp_path)

    with TestClient(app) as client:
        response = client.post(
            "/signup",
            data={"email": EMAIL, "password": PASSWORD, "confirm_password": "different"},
        )

    assert response.status_code == 400
    assert "Passwords do not match." in response.text
    assert SESSION_COOKIE_NAME not in response.cookies


def test_signup_reports_existing_account(tmp_path):
    app = _app(tmp_path)

    with TestClient(app) as client:
        _signup(client)
        client.get("/logout")
        response = _signup(client)

    assert response.status_code == 400
    assert "This email is already registered." in response.text


def test_signup_disabled(tmp_path):
    app = _app(tmp_path, allow_signup=False)

    with TestClient(app) as client:
        response = _signup(client)

    assert response.status_code == 400
    assert "Email/password accounts are not enabled." in response.text


def test_login_and_logout(tmp_path):
    app = _app(tmp_path)
    accounts = AccountDatabase(app.state.settings.database_path)
    accounts.create_account(EMAIL, PASSWORD)

    with TestClient(app) as client:
        failed = client.post("/login", data={"email": EMAIL, "password": "wrong"})
        assert failed.status_code == 400
        assert "Failed to sign in. Please check your credentials." in failed.text

        empty = client.post("/login", data={"email": "", "password": ""})
        assert empty.status_code == 400
        assert "Please provide both email and password." in empty.text

        login = client.post(
            "/login", data={"email": EMAIL, "password": PASSWORD}, follow_redirects=False
        )
        assert login.status_code == 303
        assert login.headers["location"] == "/"

        assert client.get("/login", follow_redirects=False).status_code == 303

        logout = client.get("/logout", follow_redirects=False)
        assert logout.status_code == 303
        assert logout.headers["location"] == "/login"
        assert re.search(rf"{SESSION_COOKIE_NAME}=\"?\"?;", logout.headers["set-cookie"])

        after = client.get("/", follow_redirects=False)
        assert after.status_code == 303
        assert after.headers["location"] == "/login"


def test_dashboard_stores_submitted_values_unchanged(tmp_path):
    app = _app(tmp_path)

    with TestClient(app) as client:
        _signup(client)
        client.post("/dashboard/users", data={"name": " Ada ", "email": "ada@x.com "})

    [user] = app.state.user_service.list_users()
    assert (user.name, user.email) == (" Ada ", "ada@x.com ")


def test_logout_ends_session_when_revocation_fails(tmp_path, monkeypatch):
    app = _app(tmp_path)
    sessions = app.state.auth_provider.sessions

    def fail_revoke(token):
        raise RuntimeError("session backend unavailable")

    with TestClient(app) as client:
        _signup(client)
        assert client.get("/", follow_redirects=False).status_code == 200

        monkeypatch.setattr(sessions, "revoke", fail_revoke)
        logout = client.get("/logout", follow_redirects=False)
        assert logout.status_code == 303
        assert logout.headers["location"] == "/login"
        assert re.search(rf"{SESSION_COOKIE_NAME}=\"?\"?;", logout.headers["set-cookie"])

        after = client.get("/", follow_redirects=False)
        assert after.status_code == 303
        assert after.headers["location"] == "/login"
