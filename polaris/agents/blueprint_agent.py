# polaris/agents/blueprint_agent.py
from __future__ import annotations

from typing import Any, Dict

from polaris.agents.base import BaseAgent
from polaris.agents.utils import state_get
from polaris.blueprint.parsing import parse_blueprint_json
from polaris.validation.integrity import sanitize_for_llm


class BlueprintAgent(BaseAgent):
    name = "blueprint_agent"

    system_prompt = "You are an instructional design consultant. You reply with a single JSON document."

    default_prompt = """
Write a learning blueprint from the intake answers, the follow-up questions and
the answers given to them.

Return ONLY JSON. Top level:
- "metadata": {"title", "organization", "role", "generated_at"} (all non-empty strings)
- one key per section, e.g. "executive_summary", "learning_objectives",
  "target_audience", "instructional_strategy", "content_outline", "resources",
  "assessment_strategy", "implementation_timeline", "success_metrics"

Every section is an object with a "displayType" of
infographic | timeline | chart | table | markdown.

{{retry_note}}

Intake answers:
{{static_answers}}

Follow-up questions:
{{dynamic_questions}}

Follow-up answers:
{{dynamic_answers}}
""".strip()

    def _build_variables(self, state: Any) -> Dict[str, Any]:
        error = state_get(state, "error", None)
        retry_note = ""
        if error:
            retry_note = f"The previous attempt was rejected ({error.get('code')}: {error.get('message')}). Fix that."
        return {
            "static_answers": sanitize_for_llm(state_get(state, "static_answers", None) or {}),
            "dynamic_questions": state_get(state, "dynamic_questions", None) or [],
            "dynamic_answers": sanitize_for_llm(state_get(state, "dynamic_answers", None) or {}),
            "retry_note": retry_note,
        }

    def _parse_output(self, raw: str) -> Any:
        return parse_blueprint_json(raw)

    def _to_patch(self, payload: Any, state: Any) -> Dict[str, Any]:
        return {"raw_blueprint": payload}
