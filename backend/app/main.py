"""FastAPI application entrypoints for the Code Gauntlet evaluator.

Handlers stay small: each `/evaluate` request grades the submission on a
fresh `Interpreter` (via the grader) so no state is shared between requests.
Client supplied settings are clamped to server-side ceilings. Each run stops
itself once its step or time budget is spent; the wall-clock timeout here
bounds the whole grading call, which may span several test cases.
"""

import asyncio
import logging
import os
import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field

from ..gauntlet import grader
from ..gauntlet.interpreter import Interpreter
from ..gauntlet.rules import describe_catalogue, validate_rules

logger = logging.getLogger(__name__)

app = FastAPI(title="Code Gauntlet API", version="0.1")

# Wall-clock bound for one grading call, in seconds.
EVAL_TIMEOUT_S = float(os.environ.get("GAUNTLET_EVAL_TIMEOUT_S", "2.0"))


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Enforce server-side caps for runtime tunables.

    The defaults of a fresh `Interpreter()` are the ceilings; a client may
    lower a limit but never raise it.

    Returns a dict suitable for passing directly into `Interpreter.run`.
    """
    defaults = Interpreter()
    safe = {
        "max_loop": defaults.max_loop,
        "max_call_depth": defaults.max_call_depth,
        "max_output_chars": defaults.max_output_chars,
        "max_steps": defaults.max_steps,
        "max_time_s": defaults.max_time_s,
    }
    if not settings:
        return safe
    caps = {}
    for key, ceiling in safe.items():
        cast = type(ceiling)
        try:
            requested = cast(settings.get(key, ceiling))
        except (TypeError, ValueError):
            requested = ceiling
        floor = 1 if cast is int else 0.01
        caps[key] = max(floor, min(requested, ceiling))
    return caps


class TestCaseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input: str = ""
    expected_output: str = Field("", alias="expectedOutput")


class EvaluateRequest(BaseModel):
    """Body of `POST /evaluate`.

    Fields:
        code: submitted program text.
        expected_output: exact answer to compare against (wins over test_cases).
        test_cases: input/expected pairs, each run separately.
        rules: active rule descriptions checked before running.
        settings: optional runtime tunables; capped server-side.
    """

    model_config = ConfigDict(populate_by_name=True)

    code: str
    expected_output: Optional[str] = Field(None, alias="expectedOutput")
    test_cases: List[TestCaseModel] = Field(default_factory=list, alias="testCases")
    rules: List[str] = Field(default_factory=list)
    settings: Optional[Dict[str, Any]] = None


class RulesRequest(BaseModel):
    code: str
    rules: List[str] = Field(default_factory=list)


def _challenge(req: EvaluateRequest) -> grader.Challenge:
    return grader.Challenge(
        expected_output=req.expected_output,
        test_cases=[grader.TestCase(tc.input, tc.expected_output) for tc in req.test_cases],
    )


@app.post("/evaluate")
async def evaluate_code(req: EvaluateRequest):
    """Grade a submission: rules first, then execution and comparison.

    Any unexpected exception becomes a SERVER_ERROR payload so callers always
    receive the same JSON shape.
    """
    start = time.time()
    try:
        capped = _cap_settings(req.settings or {})
        verdict = await asyncio.wait_for(
            run_in_threadpool(grader.grade, req.code, _challenge(req), req.rules, capped),
            timeout=EVAL_TIMEOUT_S,
        )
    except asyncio.TimeoutError:
        logger.warning("evaluation timed out after %.2fs", EVAL_TIMEOUT_S)
        return {
            "success": False,
            "output": "",
            "diagnostic": f"TimeoutError: evaluation exceeded {EVAL_TIMEOUT_S}s",
            "passed": 0,
            "total": 1,
            "violations": [],
            "warnings": [],
            "duration_ms": int((time.time() - start) * 1000),
            "errors": {"code": "TIMEOUT", "message": "Time limit exceeded"},
        }
    except Exception as e:
        logger.exception("evaluation failed")
        return {
            "success": False,
            "output": "",
            "diagnostic": None,
            "passed": 0,
            "total": 1,
            "violations": [],
            "warnings": [],
            "duration_ms": int((time.time() - start) * 1000),
            "errors": {"code": "SERVER_ERROR", "message": str(e)},
        }
    result = verdict.to_dict()
    result["duration_ms"] = int((time.time() - start) * 1000)
    return result


@app.post("/rules/validate")
async def validate(req: RulesRequest):
    return validate_rules(req.code, req.rules).to_dict()


@app.get("/rules")
async def list_rules():
    return describe_catalogue()
