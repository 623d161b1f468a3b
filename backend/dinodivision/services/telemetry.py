"""
Game telemetry: structured events written to the log as one JSON line each.

Events: problem_started, problem_completed, reward_unlocked,
reward_generation_failed, and api_call (from @instrument on routes).
"""
import json
import logging
import time
from contextlib import contextmanager
from functools import wraps
from typing import Optional

logger = logging.getLogger("dinodivision.telemetry")

API_VERSION = "v1"


def emit_event(event: str, *, route: Optional[str] = None, version: str = API_VERSION,
               session_id: Optional[str] = None, problem_id: Optional[str] = None,
               difficulty_level: Optional[int] = None, subject_name: Optional[str] = None,
               milestone: Optional[int] = None, error_type: Optional[str] = None,
               latency_ms: Optional[int] = None, ok: Optional[bool] = None) -> dict:
    fields = {
        "route": route,
        "session_id": session_id,
        "problem_id": problem_id,
        "difficulty_level": difficulty_level,
        "subject_name": subject_name,
        "milestone": milestone,
        "error_type": error_type,
        "latency_ms": latency_ms,
        "ok": ok,
    }
    payload = {"event": event, "version": version, "ts": time.time()}
    payload.update({k: v for k, v in fields.items() if v is not None})
    logger.info("telemetry=%s", json.dumps(payload, separators=(",", ":"), sort_keys=True))
    return payload


@contextmanager
def _timed_call(route: str, version: str):
    started = time.perf_counter()
    error_type = None
    try:
        yield
    except Exception as e:
        # HTTPException carries the status the client actually saw
        status = getattr(e, "status_code", None)
        error_type = f"{e.__class__.__name__}:{status}" if status else e.__class__.__name__
        raise
    finally:
        emit_event(
            "api_call",
            route=route,
            version=version,
            latency_ms=int((time.perf_counter() - started) * 1000),
            ok=error_type is None,
            error_type=error_type,
        )


def instrument(route: str, version: str = API_VERSION):
    """Time an async route handler and emit one api_call event per request."""
    def deco(fn):
        @wraps(fn)
        async def timed(*args, **kwargs):
            with _timed_call(route, version):
                return await fn(*args, **kwargs)
        return timed
    return deco
