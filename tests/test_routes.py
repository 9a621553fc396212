from __future__ import annotations

import asyncio
import time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from auth import LoginRateLimiter, hash_password, is_authorized, require_user
from broadcaster import Broadcaster
from config import Settings
from main import create_app
from models import StateSnapshot
from routes.live import _writer
from service import MonitorService

PASSWORD = "correct horse"
SERVERS = {"Gateway": "10.0.0.1", "NAS": "10.0.0.2"}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        servers=SERVERS,
        users={"admin": hash_password(PASSWORD, rounds=4)},
        sweep_interval=3600,
        session_secret="test-secret",
    )


@pytest.fixture
def client(settings, network):
    network.reachable = {"10.0.0.1": True}
    service = MonitorService(settings, probe_fn=network.probe)
    with TestClient(create_app(settings, service)) as test_client:
        yield test_client


def _login(client: TestClient, username: str = "admin", password: str = PASSWORD):
    return client.post("/login", json={"username": username, "password": password})


def _session_header(client: TestClient) -> dict:
    return {"cookie": f"sessionId={client.cookies.get('sessionId')}"}


# ── Authorization gate ───────────────────────────────────────────

def test_is_authorized_checks_flags_and_age() -> None:
    now = time.time()
    good = {"authenticated": True, "user_id": "admin", "login_time": now}

    assert is_authorized(good, ttl=60, now=now + 10) is True
    assert is_authorized(good, ttl=60, now=now + 61) is False
    assert is_authorized({}, ttl=60) is False
    assert is_authorized(None, ttl=60) is False
    assert is_authorized({**good, "authenticated": False}, ttl=60, now=now) is False
    assert is_authorized({**good, "user_id": None}, ttl=60, now=now) is False


def test_is_authorized_uses_last_activity_when_present() -> None:
    now = time.time()
    session = {"authenticated": True, "user_id": "admin", "login_time": now - 120, "last_seen": now - 10}

    assert is_authorized(session, ttl=60, now=now) is True
    assert is_authorized(session, ttl=60, now=now + 55) is False


def test_require_user_extends_the_session(settings) -> None:
    issued = time.time() - 100
    session = {"authenticated": True, "user_id": "admin", "login_time": issued, "last_seen": issued}
    request = SimpleNamespace(session=session, app=SimpleNamespace(state=SimpleNamespace(settings=settings)))

    assert require_user(request) == "admin"
    assert session["last_seen"] > issued
    assert session["login_time"] == issued


def test_login_rate_limiter_sliding_window() -> None:
    limiter = LoginRateLimiter(max_attempts=2, window=10)

    assert limiter.hit("1.2.3.4", now=0) is True
    assert limiter.hit("1.2.3.4", now=1) is True
    assert limiter.hit("1.2.3.4", now=2) is False
    assert limiter.hit("5.6.7.8", now=2) is True
    assert limiter.hit("1.2.3.4", now=10.5) is True


def test_login_rate_limiter_forgets_idle_addresses() -> None:
    limiter = LoginRateLimiter(max_attempts=2, window=10)

    limiter.hit("1.2.3.4", now=0)
    limiter.hit("5.6.7.8", now=5)
    assert len(limiter) == 2

    limiter.hit("9.9.9.9", now=12)

    assert len(limiter) == 2
    assert "1.2.3.4" not in limiter._attempts

    limiter.hit("9.9.9.9", now=30)

    assert len(limiter) == 1


@pytest.mark.parametrize(
    "method, path",
    [
        ("get", "/api/servers"),
        ("post", "/api/ping/Gateway"),
        ("post", "/api/sweep"),
        ("get", "/api/status"),
    ],
)
def test_api_requires_login(client, method: str, path: str) -> None:
    response = getattr(client, method)(path)

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Unauthorized access"}


def test_websocket_requires_login(client) -> None:
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws"):
            pass

    assert excinfo.value.code == 1008


# ── Login / logout ───────────────────────────────────────────────

def test_login_and_session_check(client) -> None:
    response = _login(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user"] == "admin"

    check = client.get("/auth/check").json()
    assert check["authenticated"] is True
    assert check["user"] == "admin"


def test_login_wrong_password(client) -> None:
    response = _login(client, password="nope")

    assert response.status_code == 401
    assert response.json()["success"] is False
    assert client.get("/auth/check").json()["authenticated"] is False


def test_login_unknown_user(client) -> None:
    assert _login(client, username="mallory").status_code == 401


@pytest.mark.parametrize(
    "body",
    [
        {"username": "admin"},
        {"username": "", "password": "x"},
        {"username": "a" * 51, "password": "x"},
        {"username": "admin", "password": "p" * 101},
    ],
)
def test_login_rejects_bad_input(client, body) -> None:
    response = client.post("/login", json=body)

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid input data"}


def test_login_is_rate_limited(client) -> None:
    codes = [_login(client, password="nope").status_code for _ in range(6)]

    assert codes == [401] * 5 + [429]


def test_logout_ends_the_session(client) -> None:
    _login(client)

    assert client.post("/logout").json() == {"success": True}
    assert client.get("/api/servers").status_code == 401


# ── Monitoring API ───────────────────────────────────────────────

def test_get_servers_returns_snapshot(client) -> None:
    _login(client)

    body = client.get("/api/servers").json()

    assert body["success"] is True
    assert set(body["servers"]) <= set(SERVERS)
    assert "sweep_in_progress" in body


def test_ping_known_server(client, network) -> None:
    _login(client)

    response = client.post("/api/ping/Gateway")

    assert response.status_code == 200
    body = response.json()
    assert body["server"] == "Gateway"
    assert body["ip"] == "10.0.0.1"
    assert body["result"]["online"] is True
    assert body["result"]["latency_ms"] == 4


def test_ping_unknown_server_is_404(client) -> None:
    _login(client)

    response = client.post("/api/ping/Nope")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Server not found"}


def test_trigger_sweep_is_accepted(client) -> None:
    _login(client)

    response = client.post("/api/sweep")

    assert response.status_code == 202
    assert response.json()["success"] is True
    assert isinstance(response.json()["started"], bool)


def test_status_reports_scheduler(client) -> None:
    _login(client)

    body = client.get("/api/status").json()

    assert body["monitoring_active"] is True
    assert body["hosts"] == 2
    assert body["state"] in ("idle", "running")


def test_root_banner(client) -> None:
    assert client.get("/").json()["message"] == "ServerMon is running"


# ── Live channel ─────────────────────────────────────────────────

def test_websocket_pushes_snapshot_then_updates(client) -> None:
    _login(client)

    with client.websocket_connect("/ws", headers=_session_header(client)) as ws:
        first = ws.receive_json()
        assert first["event"] == "servers-update"

        ws.send_json({"event": "manual-check"})

        # the startup sweep or the manual one, whichever lands first
        update = ws.receive_json()
        while update["event"] != "servers-update" or not update["servers"]:
            update = ws.receive_json()

        assert set(update["servers"]) == {"Gateway", "NAS"}
        assert update["servers"]["Gateway"]["online"] is True
        assert update["servers"]["NAS"]["online"] is False


def _fake_socket(settings: Settings, session: dict) -> SimpleNamespace:
    socket = SimpleNamespace(
        session=session,
        app=SimpleNamespace(state=SimpleNamespace(settings=settings)),
        sent=[],
        close_codes=[],
    )

    async def send_json(message) -> None:
        socket.sent.append(message)

    async def close(code: int = 1000) -> None:
        socket.close_codes.append(code)

    socket.send_json = send_json
    socket.close = close
    return socket


def test_live_writer_stops_pushing_once_the_session_expires(settings) -> None:
    expired = {"authenticated": True, "user_id": "admin", "login_time": time.time() - settings.session_ttl - 1}
    socket = _fake_socket(settings, expired)

    async def scenario() -> None:
        broadcaster = Broadcaster(StateSnapshot)
        subscriber = broadcaster.subscribe("admin")
        await asyncio.wait_for(_writer(socket, subscriber), timeout=1)

    asyncio.run(scenario())

    assert socket.sent == []
    assert socket.close_codes == [1008]


def test_live_writer_delivers_while_the_session_is_valid(settings) -> None:
    socket = _fake_socket(settings, {"authenticated": True, "user_id": "admin", "login_time": time.time()})

    async def scenario() -> None:
        broadcaster = Broadcaster(StateSnapshot)
        subscriber = broadcaster.subscribe("admin")
        task = asyncio.create_task(_writer(socket, subscriber))
        await asyncio.sleep(0.01)
        broadcaster.unsubscribe(subscriber)
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())

    assert [message["event"] for message in socket.sent] == ["servers-update"]
    assert socket.close_codes == []


# ── Error shapes ─────────────────────────────────────────────────

def test_unexpected_error_returns_500_shape(settings, network) -> None:
    app = create_app(settings, MonitorService(settings, probe_fn=network.probe))

    @app.get("/boom")
    def boom():
        raise RuntimeError("kaboom")

    response = TestClient(app, raise_server_exceptions=False).get("/boom")

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}
