from __future__ import annotations

from fastapi.testclient import TestClient

from wiki_api.main import create_app
from wiki_api.models.enums import MembershipRole


def _get_csrf(client: TestClient) -> str:
    res = client.get("/auth/csrf")
    assert res.status_code == 200
    return res.json()["csrf_token"]


def test_login_requires_csrf(make_workspace) -> None:
    ws = make_workspace()
    client = TestClient(create_app())

    res = client.post(
        "/auth/login",
        json={"workspace_id": str(ws.id), "email": "a@example.com", "password": "x"},
    )
    assert res.status_code == 403


def test_password_login_me_and_logout(make_workspace, make_user) -> None:
    ws = make_workspace(name="Login Wiki")
    make_user(ws, email="editor@example.com", password="EditorPass1!", role=MembershipRole.admin)
    client = TestClient(create_app())

    csrf = _get_csrf(client)
    res = client.post(
        "/auth/login",
        json={"workspace_id": str(ws.id), "email": " Editor@Example.com ", "password": "EditorPass1!"},
        headers={"x-csrf-token": csrf},
    )
    assert res.status_code == 200
    body = res.json()
    assert body["user"]["email"] == "editor@example.com"
    assert body["workspace"]["name"] == "Login Wiki"
    assert body["role"] == "admin"
    assert res.headers["cache-control"] == "no-store"

    me = client.get("/me")
    assert me.status_code == 200
    assert me.json()["role"] == "admin"

    out = client.post("/auth/logout", headers={"x-csrf-token": body["csrf_token"]})
    assert out.status_code == 200

    assert client.get("/me").status_code == 401


def test_revoked_session_cookie_is_rejected(make_workspace, make_user) -> None:
    ws = make_workspace()
    make_user(ws, email="x@example.com", password="XPassword1!")
    client = TestClient(create_app())

    csrf = _get_csrf(client)
    login = client.post(
        "/auth/login",
        json={"workspace_id": str(ws.id), "email": "x@example.com", "password": "XPassword1!"},
        headers={"x-csrf-token": csrf},
    )
    stolen = login.cookies["authToken"]
    client.post("/auth/logout", headers={"x-csrf-token": login.json()["csrf_token"]})

    other = TestClient(create_app())
    assert other.get("/me", headers={"Cookie": f"authToken={stolen}"}).status_code == 401


def test_wrong_password_is_401(make_workspace, make_user) -> None:
    ws = make_workspace()
    make_user(ws, email="y@example.com", password="RightPass1!")
    client = TestClient(create_app())
    csrf = _get_csrf(client)

    for email, password in (("y@example.com", "WrongPass1!"), ("nobody@example.com", "RightPass1!")):
        res = client.post(
            "/auth/login",
            json={"workspace_id": str(ws.id), "email": email, "password": password},
            headers={"x-csrf-token": csrf},
        )
        assert res.status_code == 401
        assert res.json()["detail"] == "email or password does not match"


def test_me_requires_session() -> None:
    client = TestClient(create_app())
    assert client.get("/me").status_code == 401
