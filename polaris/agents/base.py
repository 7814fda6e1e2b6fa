# polaris/agents/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from polaris.app.logging import get_logger
from polaris.agents.utils import (
    AgentError,
    PromptNotFound,
    get_llm,
    parse_json_object,
    render_prompt,
    validate_with_jsonschema,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class AgentResponse:
    patch: Dict[str, Any]
    raw_text: Optional[str] = None


class BaseAgent:
    """
    Base class for every agent.

    An agent renders its prompt from the state, calls the chat model, parses and
    validates the JSON reply, and turns it into a state patch.
    """

    name: str = "base_agent"
    system_prompt: str = ""
    default_prompt: str = ""
    output_schema: Optional[Dict[str, Any]] = None

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        llm: Any = None,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
    ):
        self.model_name = model
        # Injected clients only need an `invoke(messages)` returning something with `.content`.
        self.llm = llm if llm is not None else get_llm(model, temperature=temperature, base_url=base_url)

    def run(self, state: Any) -> Dict[str, Any]:
        # Graph node entry point: return only the keys to update.
        return self.invoke(state).patch

    def invoke(self, state: Any) -> AgentResponse:
        prompt_text = self._build_prompt(state)

        if self.llm is None:
            raise AgentError(f"LLM is not configured for agent '{self.name}'.")

        ai_msg = self.llm.invoke(self._messages(prompt_text))
        raw = ai_msg.content if hasattr(ai_msg, "content") else str(ai_msg)
        logger.info("Agent reply received", extra={"agent": self.name, "model": self.model_name, "chars": len(raw)})

        payload = self._parse_output(raw)
        validate_with_jsonschema(payload, self.output_schema)
        patch = self._to_patch(payload, state)

        return AgentResponse(patch=patch, raw_text=raw)

    # -------------------------
    # Internal hooks
    # -------------------------

    def _messages(self, prompt_text: str) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        if self.system_prompt.strip():
            messages.append(SystemMessage(content=self.system_prompt))
        messages.append(HumanMessage(content=prompt_text))
        return messages

    def _parse_output(self, raw: str) -> Any:
        return parse_json_object(raw)

    def _build_variables(self, state: Any) -> Dict[str, Any]:
        return {}

    def _to_patch(self, payload: Any, state: Any) -> Dict[str, Any]:
        return payload

    def _build_prompt(self, state: Any) -> str:
        if not self.default_prompt.strip():
            raise PromptNotFound(f"No default_prompt defined for agent '{self.name}'.")
        return render_prompt(self.default_prompt, self._build_variables(state))
