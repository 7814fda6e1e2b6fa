# polaris/db/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional


BlueprintStatus = Literal["draft", "submitted", "generating", "completed", "error"]


@dataclass(frozen=True)
class BlueprintRecord:
    blueprint_id: str
    user_id: Optional[str] = None
    static_answers: Dict[str, Any] = field(default_factory=dict)
    dynamic_questions: List[Dict[str, Any]] = field(default_factory=list)
    dynamic_answers: Dict[str, Any] = field(default_factory=dict)
    blueprint: Optional[Dict[str, Any]] = None
    status: BlueprintStatus = "draft"
    last_error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
