"""
HTTP tests for the game and reward routers.

The service and image cache are swapped through dependency_overrides for
instances rooted in tmp_path, so nothing touches the real save directory or
the image provider. TestClient is used as a context manager so the session
queues keep one event loop across requests.
"""
import base64
from datetime import datetime, timezone
import sys
import os

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dinodivision.core.deps import get_game_service, get_image_cache
from dinodivision.main import app
from dinodivision.models.domain import DivisionProblem
from dinodivision.services.game_loop import GameLoopOrchestrator
from dinodivision.services.image_cache import GeneratedImage, ImageGenerationCache
from dinodivision.services.image_store import ImageContentStore
from dinodivision.services.reward_roster import ROSTER
from dinodivision.services.reward_unlocks import RewardFulfilmentService
from dinodivision.services.save_store import SaveStore
from dinodivision.services.sessions import GameSessionService, SessionRegistry

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
PNG_B64 = base64.b64encode(b"\x89PNG\r\n\x1a\nfake-png").decode()


class FakeGenerator:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def __call__(self, subject_name):
        self.calls.append(subject_name)
        if self.fail:
            raise RuntimeError("provider unavailable")
        return GeneratedImage(mime_type="image/png", bytes_base64=PNG_B64)


def _fixed_problem(level, remainder_policy="allow", rng=None):
    return DivisionProblem("p", 84, 4, 21, 0, level)


def _build(tmp_path, fail=False):
    gen = FakeGenerator(fail=fail)
    cache = ImageGenerationCache(ImageContentStore(tmp_path / "rewards"), gen)
    saves = SaveStore(tmp_path / "saves")
    service = GameSessionService(
        GameLoopOrchestrator(generator=_fixed_problem, clock=lambda: NOW),
        saves,
        RewardFulfilmentService(cache, saves, clock=lambda: NOW.isoformat()),
        registry=SessionRegistry(),
        clock=lambda: NOW.isoformat(),
    )
    return service, cache, gen


@pytest.fixture
def wiring(tmp_path):
    service, cache, gen = _build(tmp_path)
    app.dependency_overrides[get_game_service] = lambda: service
    app.dependency_overrides[get_image_cache] = lambda: cache
    yield service, gen, tmp_path
    app.dependency_overrides.clear()


@pytest.fixture
def client(wiring):
    with TestClient(app) as c:
        yield c


def _start(client, name="Rex"):
    response = client.post("/api/game/start", json={"player_name": name})
    assert response.status_code == 200
    return response.json()


def _solve_one(client, service, session_id):
    while True:
        step = service.get(session_id).state.active_step
        body = client.post(f"/api/game/{session_id}/input", json={"value": step.expected_value}).json()
        if body["outcome"] == "complete":
            return body


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Game lifecycle
# ---------------------------------------------------------------------------

class TestGameRoutes:
    def test_start_hides_unrevealed_answers(self, client):
        body = _start(client)
        assert body["status"] == "started"
        state = body["state"]
        assert state["save_file_name"] == "rex-save.json"
        assert state["active_problem"] == {"id": "p", "dividend": 84, "divisor": 4, "difficulty_tier": 1}
        assert all(s["expected_value"] is None and not s["revealed"] for s in state["steps"])
        assert state["progress"]["session"]["attempted_problems"] == 1

    def test_start_requires_a_name(self, client):
        assert client.post("/api/game/start", json={}).status_code == 422
        assert client.post("/api/game/start", json={"player_name": "   "}).status_code == 400

    def test_correct_then_incorrect_input(self, client):
        session_id = _start(client)["session_id"]

        correct = client.post(f"/api/game/{session_id}/input", json={"value": "2"}).json()
        assert correct["outcome"] == "correct"
        assert correct["focus_index"] == 1
        assert correct["state"]["steps"][0]["expected_value"] == "2"
        assert correct["state"]["steps"][1]["expected_value"] is None

        wrong = client.post(f"/api/game/{session_id}/input", json={"value": "7"}).json()
        assert wrong["outcome"] == "incorrect"
        assert wrong["hint"] == "Multiply the divisor 4 by the quotient digit 2."
        assert wrong["feedback"]["tone"] == "retry"

    def test_complete_reveals_answer_and_chains(self, wiring, client):
        service = wiring[0]
        session_id = _start(client)["session_id"]
        body = _solve_one(client, service, session_id)
        assert body["completed"]["problem"]["quotient"] == 21
        assert body["completed"]["total_problems_solved"] == 1
        assert body["next_problem"]["problem"]["dividend"] == 84
        assert body["state"]["active_step_index"] == 0

    def test_unknown_session(self, client):
        assert client.get("/api/game/nobody-1").status_code == 404
        assert client.post("/api/game/nobody-1/input", json={"value": "1"}).status_code == 404
        assert client.post("/api/game/nobody-1/skip").status_code == 404
        assert client.post("/api/game/nobody-1/end").status_code == 404

    def test_skip(self, client):
        session_id = _start(client)["session_id"]
        body = client.post(f"/api/game/{session_id}/skip").json()
        assert body["state"]["progress"]["lifetime"]["total_problems_attempted"] == 2

    def test_save_snapshot(self, client):
        session_id = _start(client)["session_id"]
        body = client.get(f"/api/game/{session_id}/save").json()
        assert body["file_name"] == "rex-save.json"
        assert body["save"]["playerName"] == "Rex"
        assert body["save"]["totalProblemsAttempted"] == 1

    def test_end_writes_rewards_and_closes(self, wiring, client):
        service, gen, tmp_path = wiring
        session_id = _start(client)["session_id"]
        for _ in range(5):
            _solve_one(client, service, session_id)

        body = client.post(f"/api/game/{session_id}/end").json()
        assert body["status"] == "ended"
        assert body["file_name"] == "rex-save.json"
        save = body["save"]
        assert save["totalProblemsSolved"] == 5
        assert [r["subjectName"] for r in save["unlockedRewards"]] == [ROSTER[0]]
        assert save["sessionHistory"][0]["endedAt"] is not None
        assert gen.calls == [ROSTER[0]]
        assert (tmp_path / "saves" / "rex-save.json").exists()
        assert client.get(f"/api/game/{session_id}").status_code == 404


class TestLoadRoute:
    def test_nothing_to_load_is_cancelled(self, client):
        assert client.post("/api/game/load", json={}).json() == {"status": "cancelled"}
        assert client.post("/api/game/load", json={"player_name": "Nobody"}).json() == {
            "status": "cancelled"
        }

    def test_load_from_document(self, client):
        body = client.post("/api/game/load", json={"save": {
            "schemaVersion": 1,
            "playerName": "Rex",
            "totalProblemsSolved": 6,
            "currentDifficultyLevel": 2,
        }}).json()
        assert body["status"] == "loaded"
        lifetime = body["state"]["progress"]["lifetime"]
        assert lifetime["total_problems_solved"] == 6
        assert lifetime["current_difficulty_level"] == 2
        assert [r["reward_id"] for r in body["state"]["unlocked_rewards"]] == ["reward-1"]

    def test_load_by_name_after_end(self, client):
        session_id = _start(client)["session_id"]
        client.post(f"/api/game/{session_id}/end")
        body = client.post("/api/game/load", json={"player_name": "rex"}).json()
        assert body["status"] == "loaded"
        assert body["state"]["progress"]["lifetime"]["total_problems_attempted"] == 2

    def test_invalid_document(self, client):
        response = client.post("/api/game/load", json={"save": {"playerName": "Rex", "schemaVersion": 7}})
        assert response.status_code == 400

    def test_unusable_player_name_in_document(self, client):
        response = client.post("/api/game/load", json={"save": {"playerName": "!!!"}})
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------

class TestRewardRoutes:
    def test_generate_then_ready(self, wiring, client):
        gen = wiring[1]
        missing = client.get("/api/rewards/image-status", params={"subject_name": "Velociraptor"})
        assert missing.json()["status"] == "missing"

        made = client.post("/api/rewards/generate-image", json={"subject_name": "Velociraptor"})
        assert made.status_code == 200
        assert made.json()["imagePath"].startswith("/rewards/velociraptor.png?v=")

        again = client.post("/api/rewards/generate-image", json={"subject_name": "velociraptor"})
        assert again.json()["imagePath"] == made.json()["imagePath"]
        assert gen.calls == ["Velociraptor"]

        ready = client.get("/api/rewards/image-status", params={"subject_name": "Velociraptor"})
        assert ready.json()["status"] == "ready"

    def test_generation_failure_is_502(self, tmp_path):
        _, cache, _ = _build(tmp_path, fail=True)
        app.dependency_overrides[get_image_cache] = lambda: cache
        try:
            with TestClient(app) as c:
                response = c.post("/api/rewards/generate-image", json={"subject_name": "Velociraptor"})
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 502

    def test_unusable_subject_is_400(self, client):
        response = client.get("/api/rewards/image-status", params={"subject_name": "!!!"})
        assert response.status_code == 400

    def test_retry_unknown_session(self, client):
        assert client.post("/api/rewards/nobody-1/retry").status_code == 404

    def test_retry_with_nothing_missing(self, client):
        session_id = _start(client)["session_id"]
        body = client.post(f"/api/rewards/{session_id}/retry").json()
        assert body == {"session_id": session_id, "queued": []}

    def test_roster(self, client):
        body = client.get("/api/rewards/roster").json()
        assert body["interval"] == 5
        assert len(body["roster"]) == 100
        first = body["roster"][0]
        assert first["subject_name"] == ROSTER[0]
        assert first["solved_count"] == 5
        assert first["status"] == "missing"
