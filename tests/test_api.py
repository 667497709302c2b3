"""HTTP API tests — routes, status codes and error mapping.

The app is built with ``create_app()`` and driven in-process through
httpx's ASGITransport.  The lifespan handler does not run; instead each
test wires ``app.state`` by hand:

  - ``engine``: a ScreeningEngine whose repository is the in-memory
    MockRepository from test_engine
  - ``store``: the session-scoped CatalogStore fixture
  - ``data_source``: None, or a CallbackDataSource for fast-path tests

``get_db`` is overridden to yield an AsyncMock, so no database is needed.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import ASGITransport, AsyncClient

from screening_db.models.enums import SessionStatus
from screening_flow.engine import ScreeningEngine
from screening_flow.outcome import RuleBasedOutcomeEvaluator
from screening_server.app import create_app
from screening_server.config import ServerSettings
from screening_server.dependencies import get_db
from screening_server.fast_path import CallbackDataSource

from test_engine import ADVAIR_WALK, FailingEvaluator, MockRepository
from test_fast_path import CONNECT_URL, FakeClock, success

HEADERS = {"X-User-ID": "user1"}
API = "/api/v1"


def _build_app(store, repo, *, data_source=None, evaluator=None, settings=None):
    app = create_app(settings or ServerSettings())
    engine = ScreeningEngine(
        store,
        evaluator or RuleBasedOutcomeEvaluator(),
        data_source=data_source,
        clock=FakeClock(),
    )
    engine._repo = repo
    app.state.store = store
    app.state.data_source = data_source
    app.state.engine = engine

    async def _db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = _db
    return app


@asynccontextmanager
async def _client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.engine.close()


async def _create(client, program_id="advair_diskus", session_id="sess1"):
    resp = await client.post(
        f"{API}/sessions",
        json={"session_id": session_id, "program_id": program_id},
        headers=HEADERS,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def repo():
    return MockRepository()


@pytest.fixture
def app(store, repo):
    return _build_app(store, repo)


# =====================================================================
# Sessions
# =====================================================================


class TestSessions:
    @pytest.mark.asyncio
    async def test_create(self, app):
        async with _client(app) as client:
            body = await _create(client)
        assert body["session_id"] == "sess1"
        assert body["program_id"] == "advair_diskus"
        assert body["status"] == "created"
        assert body["catalog_version"] == "1.2.0"

    @pytest.mark.asyncio
    async def test_user_header_required(self, app):
        async with _client(app) as client:
            resp = await client.post(
                f"{API}/sessions", json={"session_id": "s", "program_id": "advair_diskus"},
            )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_duplicate_is_conflict(self, app):
        async with _client(app) as client:
            await _create(client)
            resp = await client.post(
                f"{API}/sessions",
                json={"session_id": "sess1", "program_id": "advair_diskus"},
                headers=HEADERS,
            )
        assert resp.status_code == 409
        # Internal identifiers never reach the client
        assert resp.json() == {"detail": "Conflict with the current session state"}

    @pytest.mark.asyncio
    async def test_unknown_program(self, app):
        async with _client(app) as client:
            resp = await client.post(
                f"{API}/sessions",
                json={"session_id": "s", "program_id": "tylenol"},
                headers=HEADERS,
            )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_get_and_list(self, app):
        async with _client(app) as client:
            await _create(client)
            await _create(client, program_id="crestor_direct", session_id="sess2")

            resp = await client.get(f"{API}/sessions/sess1", headers=HEADERS)
            assert resp.status_code == 200
            assert resp.json()["program_id"] == "advair_diskus"

            resp = await client.get(
                f"{API}/sessions", params={"program_id": "crestor_direct"}, headers=HEADERS,
            )
            assert [s["session_id"] for s in resp.json()] == ["sess2"]

            resp = await client.get(f"{API}/sessions/nope", headers=HEADERS)
            assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_sessions_are_scoped_to_user(self, app):
        async with _client(app) as client:
            await _create(client)
            resp = await client.get(f"{API}/sessions/sess1", headers={"X-User-ID": "user2"})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_proxy_secret(self, store, repo):
        app = _build_app(store, repo, settings=ServerSettings(trusted_proxy_secret="s3cret"))
        body = {"session_id": "s", "program_id": "advair_diskus"}
        async with _client(app) as client:
            resp = await client.post(f"{API}/sessions", json=body, headers=HEADERS)
            assert resp.status_code == 403
            resp = await client.post(
                f"{API}/sessions", json=body,
                headers={**HEADERS, "X-Proxy-Secret": "wrong"},
            )
            assert resp.status_code == 403
            resp = await client.post(
                f"{API}/sessions", json=body,
                headers={**HEADERS, "X-Proxy-Secret": "s3cret"},
            )
            assert resp.status_code == 201


# =====================================================================
# Steps
# =====================================================================


class TestSteps:
    @pytest.mark.asyncio
    async def test_current_step(self, app):
        async with _client(app) as client:
            await _create(client)
            resp = await client.get(f"{API}/sessions/sess1/step", headers=HEADERS)
        body = resp.json()
        assert body["type"] == "question"
        assert body["question"]["qid"] == "age_check"
        assert body["fast_path_offered"] is False

    @pytest.mark.asyncio
    async def test_invalid_answer_is_not_an_http_error(self, app):
        async with _client(app) as client:
            await _create(client)
            resp = await client.post(
                f"{API}/sessions/sess1/step", json={"value": "maybe"}, headers=HEADERS,
            )
        assert resp.status_code == 200
        assert resp.json()["error"] == "must be true or false"
        assert resp.json()["question"]["qid"] == "age_check"

    @pytest.mark.asyncio
    async def test_wrong_qid_is_bad_request(self, app):
        async with _client(app) as client:
            await _create(client)
            resp = await client.post(
                f"{API}/sessions/sess1/step",
                json={"qid": "heart_conditions", "value": True},
                headers=HEADERS,
            )
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Invalid request"}

    @pytest.mark.asyncio
    async def test_answer_back_and_progress(self, app):
        async with _client(app) as client:
            await _create(client)
            resp = await client.post(
                f"{API}/sessions/sess1/step", json={"qid": "age_check", "value": True},
                headers=HEADERS,
            )
            assert resp.json()["question"]["qid"] == "diagnosis_check"

            resp = await client.get(f"{API}/sessions/sess1/progress", headers=HEADERS)
            assert resp.json()["answered"] == 1
            assert resp.json()["progress"] == 17

            resp = await client.post(f"{API}/sessions/sess1/back", headers=HEADERS)
            assert resp.json()["question"]["qid"] == "age_check"
            assert resp.json()["question"]["previous_value"] is True

    @pytest.mark.asyncio
    async def test_full_walk(self, app, repo):
        async with _client(app) as client:
            await _create(client)
            for value in ADVAIR_WALK:
                resp = await client.post(
                    f"{API}/sessions/sess1/step", json={"value": value}, headers=HEADERS,
                )
            body = resp.json()
            assert body["type"] == "completed"
            assert body["evaluation"]["outcome"] == "ok_to_use"
            assert body["evaluation"]["eligible_for_code"] is True

            # Further answers conflict; submit returns the stored result
            resp = await client.post(
                f"{API}/sessions/sess1/step", json={"value": True}, headers=HEADERS,
            )
            assert resp.status_code == 409
            resp = await client.post(f"{API}/sessions/sess1/submit", headers=HEADERS)
            assert resp.status_code == 200
            assert resp.json()["evaluation"]["outcome"] == "ok_to_use"
        assert repo.row().status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_evaluation_failure_is_bad_gateway(self, store, repo):
        app = _build_app(store, repo, evaluator=FailingEvaluator())
        async with _client(app) as client:
            await _create(client)
            for value in ADVAIR_WALK:
                resp = await client.post(
                    f"{API}/sessions/sess1/step", json={"value": value}, headers=HEADERS,
                )
        assert resp.status_code == 502
        assert "saved" in resp.json()["detail"]
        assert len(repo.row().answers) == 6
        assert repo.row().status == SessionStatus.IN_PROGRESS


# =====================================================================
# Programs
# =====================================================================


class TestPrograms:
    @pytest.mark.asyncio
    async def test_list(self, app):
        async with _client(app) as client:
            resp = await client.get(f"{API}/programs")
        ids = [p["id"] for p in resp.json()]
        assert ids == ["advair_diskus", "crestor_direct"]

    @pytest.mark.asyncio
    async def test_get(self, app):
        async with _client(app) as client:
            resp = await client.get(f"{API}/programs/crestor_direct")
        body = resp.json()
        assert body["version"] == "2.0.1"
        assert [q["id"] for q in body["questions"]][-1] == "risk_factors"

    @pytest.mark.asyncio
    async def test_unknown(self, app):
        async with _client(app) as client:
            resp = await client.get(f"{API}/programs/tylenol")
        assert resp.status_code == 404


# =====================================================================
# Fast path
# =====================================================================


@pytest.fixture
def fp_app(store, repo):
    return _build_app(store, repo, data_source=CallbackDataSource(CONNECT_URL, "test-secret"))


async def _start_fast_path(client):
    resp = await client.post(f"{API}/sessions/sess1/fast-path", json={}, headers=HEADERS)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    state = parse_qs(urlparse(body["connect_url"]).query)["state"][0]
    return body, state


class TestFastPathRoutes:
    @pytest.mark.asyncio
    async def test_disabled(self, app):
        async with _client(app) as client:
            await _create(client)
            resp = await client.post(f"{API}/sessions/sess1/fast-path", json={}, headers=HEADERS)
            assert resp.status_code == 404
            resp = await client.post(
                f"{API}/fast-path/callback", json={"state": "x", "closed": True},
            )
            assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_callback_flow(self, fp_app, repo):
        async with _client(fp_app) as client:
            await _create(client)
            step = (await client.get(f"{API}/sessions/sess1/step", headers=HEADERS)).json()
            assert step["fast_path_offered"] is True

            body, state = await _start_fast_path(client)
            assert body["state"] == "awaiting_authorization"
            assert body["connect_url"].startswith(CONNECT_URL)

            resp = await client.post(
                f"{API}/fast-path/callback",
                json={"state": state, "message": success({"age_verified": True})},
            )
            assert resp.json() == {"accepted": True}

            resp = await client.post(
                f"{API}/sessions/sess1/fast-path/wait", params={"timeout": 1}, headers=HEADERS,
            )
            assert resp.json()["state"] == "confirming"
            assert resp.json()["value"] is True

            resp = await client.post(
                f"{API}/sessions/sess1/fast-path/confirm", json={"accept": True}, headers=HEADERS,
            )
            assert resp.json()["type"] == "question"
            assert resp.json()["question"]["qid"] == "diagnosis_check"
        assert repo.row().answers == {"age_check": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["forged.token", "caf\u00e9.token", "token.\u00e9"])
    async def test_forged_state(self, fp_app, state):
        async with _client(fp_app) as client:
            resp = await client.post(
                f"{API}/fast-path/callback", json={"state": state, "closed": True},
            )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_closed_callback(self, fp_app):
        async with _client(fp_app) as client:
            await _create(client)
            _, state = await _start_fast_path(client)
            resp = await client.post(
                f"{API}/fast-path/callback", json={"state": state, "closed": True},
            )
            assert resp.json() == {"accepted": True}

            resp = await client.post(
                f"{API}/sessions/sess1/fast-path/wait", params={"timeout": 1}, headers=HEADERS,
            )
            assert resp.json()["state"] == "failed"
            assert resp.json()["message"]

            # The attempt released its token
            resp = await client.post(
                f"{API}/fast-path/callback", json={"state": state, "closed": True},
            )
            assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_client_message_and_reject(self, fp_app, repo):
        async with _client(fp_app) as client:
            await _create(client)
            await _start_fast_path(client)
            resp = await client.post(
                f"{API}/sessions/sess1/fast-path/message",
                json={"message": success({"age_verified": True})},
                headers=HEADERS,
            )
            assert resp.json() == {"accepted": True}
            await client.post(
                f"{API}/sessions/sess1/fast-path/wait", params={"timeout": 1}, headers=HEADERS,
            )
            resp = await client.post(
                f"{API}/sessions/sess1/fast-path/confirm", json={"accept": False}, headers=HEADERS,
            )
            assert resp.json()["question"]["qid"] == "age_check"
            assert resp.json()["fast_path_offered"] is False
        assert repo.row().answers == {}

    @pytest.mark.asyncio
    async def test_second_start_conflicts(self, fp_app):
        async with _client(fp_app) as client:
            await _create(client)
            await _start_fast_path(client)
            resp = await client.post(
                f"{API}/sessions/sess1/fast-path", json={}, headers=HEADERS,
            )
            assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_cancel_and_manual(self, fp_app):
        async with _client(fp_app) as client:
            await _create(client)
            await _start_fast_path(client)
            resp = await client.post(f"{API}/sessions/sess1/fast-path/cancel", headers=HEADERS)
            assert resp.json()["state"] == "failed"

            resp = await client.post(f"{API}/sessions/sess1/fast-path/manual", headers=HEADERS)
            assert resp.json()["type"] == "question"
            resp = await client.get(f"{API}/sessions/sess1/fast-path", headers=HEADERS)
            assert resp.json()["state"] == "manual"
