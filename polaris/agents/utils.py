# polaris/agents/utils.py
from __future__ import annotations

import json
import os
import re
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from jsonschema import Draft202012Validator
from langchain_openai import ChatOpenAI

from polaris.app.errors import BlueprintValidationError
from polaris.blueprint.parsing import parse_blueprint_json


# -------------------------
# Exceptions
# -------------------------

class AgentError(Exception):
    pass


class PromptNotFound(AgentError):
    pass


class AgentOutputParseError(AgentError):
    pass


class AgentOutputValidationError(AgentError):
    def __init__(self, problems: List[str]):
        super().__init__("; ".join(problems))
        self.problems = problems


# -------------------------
# LLM Factory
# -------------------------

def get_llm(model_name: str, temperature: float = 0.0, base_url: Optional[str] = None) -> ChatOpenAI:
    """
    Chat model client for the agents.

    The API key comes from OPENAI_API_KEY (a .env file is honoured). `base_url`
    points the client at a proxy or an OpenAI-compatible provider.
    """
    load_dotenv()

    kwargs: Dict[str, Any] = {
        "model": model_name,
        "temperature": temperature,
        "api_key": os.getenv("OPENAI_API_KEY"),
    }
    if base_url:
        kwargs["base_url"] = base_url
    return ChatOpenAI(**kwargs)


# -------------------------
# Helper Functions
# -------------------------

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_\.]+)\s*\}\}")


def state_get(state: Any, key: str, default: Any = None) -> Any:
    # Graph nodes hand over the dataclass state; direct callers pass plain dicts.
    if isinstance(state, dict):
        return state.get(key, default)
    return getattr(state, key, default)


def render_prompt(template: str, variables: Dict[str, Any]) -> str:
    # {{ name }} placeholders; structures are inlined as indented JSON, unknown names are left as written.
    def repl(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        v = variables[key]
        if isinstance(v, (dict, list)):
            return json.dumps(v, ensure_ascii=False, indent=2)
        return str(v)

    return _PLACEHOLDER_RE.sub(repl, template)


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Decode the JSON object in a model reply.

    Fences, preamble and trailing commentary are tolerated the same way as for
    blueprint documents; anything that is not a single object is an error.
    """
    try:
        obj = parse_blueprint_json(text)
    except BlueprintValidationError as e:
        raise AgentOutputParseError(f"Could not read a JSON object from output: {e}") from e

    if not isinstance(obj, dict):
        raise AgentOutputParseError(f"Expected a JSON object at top level, got {type(obj).__name__}.")
    return obj


def validate_with_jsonschema(payload: Any, schema: Optional[Dict[str, Any]], limit: int = 10) -> None:
    # Reports every violation (up to `limit`) as "path: message".
    if schema is None:
        return
    errors = sorted(
        Draft202012Validator(schema).iter_errors(payload),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    if errors:
        problems = [
            f"{'/'.join(str(p) for p in e.absolute_path) or '<root>'}: {e.message}"
            for e in errors[:limit]
        ]
        raise AgentOutputValidationError(problems)
