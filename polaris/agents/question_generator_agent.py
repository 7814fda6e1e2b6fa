# polaris/agents/question_generator_agent.py
from __future__ import annotations

from typing import Any, Dict

from polaris.agents.base import BaseAgent
from polaris.agents.utils import state_get
from polaris.validation.integrity import sanitize_for_llm
from polaris.validation.questionnaire import DYNAMIC_QUESTIONS_SCHEMA, prepare_question_set


class QuestionGeneratorAgent(BaseAgent):
    name = "question_generator_agent"
    output_schema = DYNAMIC_QUESTIONS_SCHEMA

    system_prompt = "You are an instructional design consultant. You reply with JSON only."

    default_prompt = """
Using the intake answers below, write follow-up questions that close the gaps
needed to design a learning blueprint for this organization.

Return ONLY JSON:
{
  "sections": [
    {
      "id": "section-id",
      "title": "...",
      "description": "...",
      "order": 0,
      "questions": [
        {
          "id": "q-unique-id",
          "label": "...",
          "type": "text|textarea|email|url|radio_pills|radio_cards|toggle_switch|select|checkbox_pills|checkbox_cards|multiselect|scale|enhanced_scale|labeled_slider|currency|number_spinner|number|date",
          "required": true,
          "options": [{"value": "lowercase-hyphenated", "label": "..."}],
          "maxSelections": 3,
          "scaleConfig": {"min": 1, "max": 5},
          "validation": [{"rule": "minLength", "value": 10, "message": "..."}]
        }
      ]
    }
  ]
}

Rules:
- Question ids are unique across all sections.
- Selection questions carry options; option values are lowercase and hyphenated.
- toggle_switch questions have exactly two options.

Intake answers:
{{static_answers}}
""".strip()

    def _build_variables(self, state: Any) -> Dict[str, Any]:
        return {"static_answers": sanitize_for_llm(state_get(state, "static_answers", None) or {})}

    def _to_patch(self, payload: Dict[str, Any], state: Any) -> Dict[str, Any]:
        return {"dynamic_questions": prepare_question_set(payload)}
