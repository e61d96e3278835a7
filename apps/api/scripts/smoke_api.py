from __future__ import annotations

import os
import sys
from urllib.parse import urlparse

import httpx


def _assert_ok(response: httpx.Response, *, label: str) -> None:
    if response.status_code >= 400:
        raise RuntimeError(f"{label} failed: HTTP {response.status_code} body={response.text}")


def main() -> None:
    base_url = os.environ.get("API_BASE_URL", "http://localhost:8000")
    workspace_id = os.environ["SMOKE_WORKSPACE_ID"]
    email = os.environ.get("SMOKE_EMAIL", "smoke-admin@example.com")
    password = os.environ["SMOKE_PASSWORD"]

    with httpx.Client(base_url=base_url, timeout=20.0) as client:
        health = client.get("/healthz")
        _assert_ok(health, label="GET /healthz")
        print("ok: GET /healthz")

        ready = client.get("/readyz")
        _assert_ok(ready, label="GET /readyz")
        print("ok: GET /readyz")

        csrf_res = client.get("/auth/csrf")
        _assert_ok(csrf_res, label="GET /auth/csrf")
        csrf_token = csrf_res.json()["csrf_token"]
        print("ok: GET /auth/csrf")

        login = client.post(
            "/auth/login",
            json={"workspace_id": workspace_id, "email": email, "password": password},
            headers={"x-csrf-token": csrf_token},
        )
        _assert_ok(login, label="POST /auth/login")
        login_data = login.json()
        print("ok: POST /auth/login")

        me = client.get("/me")
        _assert_ok(me, label="GET /me")
        print("ok: GET /me")

        # A 401 here means Discord login is switched off for the workspace.
        start = client.get("/auth/discord", params={"workspace_id": workspace_id})
        if start.status_code == 302:
            target = urlparse(start.headers["location"])
            print(f"ok: GET /auth/discord -> {target.netloc}{target.path}")
        else:
            print(f"skip: GET /auth/discord returned HTTP {start.status_code}")

        if login_data["role"] in {"owner", "admin"}:
            config = client.get("/auth/discord-config")
            _assert_ok(config, label="GET /auth/discord-config")
            print(f"ok: GET /auth/discord-config enabled={config.json()['enabled']}")

        workspace = login_data["workspace"]
        user = login_data["user"]
        print(f"smoke complete: workspace={workspace['name']} ({workspace['id']}) user={user['email']}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001
        print(f"smoke failed: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
