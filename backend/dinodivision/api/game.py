"""
Game session endpoints.

POST /api/game/start               — new game for a player name
POST /api/game/load                — resume from a save (or cancel)
GET  /api/game/{session_id}        — current state (unrevealed answers hidden)
POST /api/game/{session_id}/input  — submit a value for the step in focus
POST /api/game/{session_id}/skip   — abandon the current problem
POST /api/game/{session_id}/end    — close the session and write the save
GET  /api/game/{session_id}/save   — save-file snapshot for download
"""
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from dinodivision.core.deps import get_game_service
from dinodivision.core.errors import (
    NoActiveProblemError,
    ProblemGenerationError,
    SessionNotFoundError,
    StepValidationError,
)
from dinodivision.models.domain import DivisionProblem, Step
from dinodivision.models.game import LoadGameRequest, StartGameRequest, StepInputRequest
from dinodivision.services.game_loop import ProblemCompleted, ProblemStarted
from dinodivision.services.save_store import SaveStore, apply_progress
from dinodivision.services.sessions import GameSessionService, PlayerSession
from dinodivision.services.telemetry import instrument

logger = logging.getLogger("dinodivision.api.game")

router = APIRouter(prefix="/api/game", tags=["game"])


# ──────────────────────────────────────────────
# Views
# ──────────────────────────────────────────────

def problem_view(problem: DivisionProblem, solved: bool = False) -> dict:
    out = {
        "id": problem.id,
        "dividend": problem.dividend,
        "divisor": problem.divisor,
        "difficulty_tier": problem.difficulty_tier,
    }
    if solved:
        out["quotient"] = problem.quotient
        out["remainder"] = problem.remainder
    return out


def step_view(step: Step, revealed: bool) -> dict:
    out = step.to_dict()
    if not revealed:
        out["expected_value"] = None
        if "working_number" in out:
            out["working_number"] = None
    out["revealed"] = revealed
    return out


def state_view(session: PlayerSession) -> dict:
    state = session.state
    return {
        "session_id": session.session_id,
        "player_name": session.player_name,
        "active_problem": problem_view(state.active_problem) if state.active_problem else None,
        "steps": [step_view(s, i < state.revealed_step_count) for i, s in enumerate(state.steps)],
        "active_step_index": state.active_step_index,
        "revealed_step_count": state.revealed_step_count,
        "progress": asdict(state.progress),
        "unlocked_rewards": [r.to_dict() for r in state.unlocked_rewards],
        "reward_fulfilments": [f.to_dict() for f in session.fulfilments.values()],
        "save_file_name": session.save_file_name,
    }


def started_view(started: ProblemStarted) -> dict:
    return {
        "problem": problem_view(started.problem),
        "first_step_id": started.first_step_id,
        "prefetch": asdict(started.prefetch) if started.prefetch else None,
    }


def completed_view(completed: ProblemCompleted) -> dict:
    return {
        "problem": problem_view(completed.problem, solved=True),
        "total_problems_solved": completed.total_problems_solved,
        "difficulty_level": completed.difficulty_level,
        "leveled_up": completed.leveled_up,
        "unlocked_rewards": [r.to_dict() for r in completed.unlocked_rewards],
        "exhausted_milestones": list(completed.exhausted_milestones),
    }


def _session_or_404(service: GameSessionService, session_id: str) -> PlayerSession:
    try:
        return service.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ──────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────

@router.post("/start")
@instrument(route="/api/game/start")
async def start_game(
    request: StartGameRequest,
    service: GameSessionService = Depends(get_game_service),
):
    """Start a new game; the first problem is generated immediately."""
    try:
        session, started = await service.start_new(request.player_name)
    except ProblemGenerationError as e:
        logger.error("[game.start_game] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "status": "started",
        "session_id": session.session_id,
        "started": started_view(started),
        "state": state_view(session),
    }


@router.post("/load")
@instrument(route="/api/game/load")
async def load_game(
    request: LoadGameRequest,
    service: GameSessionService = Depends(get_game_service),
):
    """Resume from a save document or a player's save file."""
    try:
        if request.save is not None:
            loaded = await service.load(SaveStore.parse(request.save))
        elif request.player_name:
            loaded = await service.load_by_name(request.player_name)
        else:
            loaded = None
    except ProblemGenerationError as e:
        logger.error("[game.load_game] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid save file: {e}")

    if loaded is None:
        return {"status": "cancelled"}

    session, started = loaded
    return {
        "status": "loaded",
        "session_id": session.session_id,
        "started": started_view(started),
        "state": state_view(session),
    }


@router.get("/{session_id}")
async def get_game(session_id: str, service: GameSessionService = Depends(get_game_service)):
    return state_view(_session_or_404(service, session_id))


@router.post("/{session_id}/input")
@instrument(route="/api/game/input")
async def submit_input(
    session_id: str,
    request: StepInputRequest,
    service: GameSessionService = Depends(get_game_service),
):
    """Grade one value against the step in focus."""
    try:
        result = await service.submit(session_id, request.value)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NoActiveProblemError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StepValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProblemGenerationError as e:
        logger.error("[game.submit_input] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    v = result.validation
    return {
        "outcome": v.outcome,
        "step_id": v.current_step_id,
        "focus_index": v.focus_index,
        "focus_step_id": v.focus_step_id,
        "feedback": asdict(v.feedback),
        "hint": v.hint,
        "completed": completed_view(result.completed) if result.completed else None,
        "next_problem": started_view(result.next_problem) if result.next_problem else None,
        "state": state_view(service.get(session_id)),
    }


@router.post("/{session_id}/skip")
@instrument(route="/api/game/skip")
async def skip_problem(session_id: str, service: GameSessionService = Depends(get_game_service)):
    try:
        started = await service.skip(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NoActiveProblemError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ProblemGenerationError as e:
        logger.error("[game.skip_problem] %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "started": started_view(started),
        "state": state_view(service.get(session_id)),
    }


@router.post("/{session_id}/end")
@instrument(route="/api/game/end")
async def end_game(session_id: str, service: GameSessionService = Depends(get_game_service)):
    """Close the session; pending reward work is flushed before the final write."""
    try:
        session = await service.end(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {
        "status": "ended",
        "file_name": session.save_file_name,
        "save": session.save.to_json_dict(),
    }


@router.get("/{session_id}/save")
async def get_save(session_id: str, service: GameSessionService = Depends(get_game_service)):
    session = _session_or_404(service, session_id)
    snapshot = apply_progress(
        session.save,
        session.session_id,
        session.started_at,
        session.state.progress.session,
        session.state.progress.lifetime,
        service.clock(),
    )
    return {
        "file_name": session.save_file_name,
        "save": snapshot.to_json_dict(),
    }
