# polaris/workflows/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TypedDict


# -------------------------
# Typed payloads (JSON-friendly)
# -------------------------

class StepError(TypedDict, total=False):
    code: str
    message: str
    details: Any


# -------------------------
# Blueprint generation state (single object passed around LangGraph)
# -------------------------

@dataclass
class GenerationState:
    # Identity
    blueprint_id: str = ""

    # Inputs
    static_answers: Dict[str, Any] = field(default_factory=dict)
    dynamic_questions: List[Dict[str, Any]] = field(default_factory=list)
    dynamic_answers: Dict[str, Any] = field(default_factory=dict)

    # Generation loop
    attempts: int = 0
    raw_blueprint: Any = None
    error: Optional[StepError] = None

    # Output
    blueprint: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    status: str = "pending"


def step_error(code: str, message: str, details: Any = None) -> StepError:
    err: StepError = {"code": code, "message": message}
    if details is not None:
        err["details"] = details
    return err
