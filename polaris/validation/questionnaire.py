# polaris/validation/questionnaire.py
from __future__ import annotations

from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from polaris.app.errors import QuestionDefinitionError
from polaris.validation.models import ALL_INPUT_KINDS, RULE_NAMES, Section
from polaris.validation.options import normalize_section_questions


_OPTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "anyOf": [{"required": ["value"]}, {"required": ["label"]}],
    "properties": {
        "value": {"type": "string"},
        "label": {"type": "string"},
        "description": {"type": "string"},
        "icon": {"type": "string"},
        "disabled": {"type": "boolean"},
    },
}

_BOUNDS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "min": {"type": "number"},
        "max": {"type": "number"},
    },
}

_QUESTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["id", "label", "type"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "label": {"type": "string", "minLength": 1},
        "type": {"enum": sorted(ALL_INPUT_KINDS)},
        "required": {"type": "boolean"},
        "placeholder": {"type": "string"},
        "helpText": {"type": "string"},
        "options": {"type": "array", "items": _OPTION_SCHEMA},
        "maxSelections": {"type": "integer", "minimum": 1},
        "validation": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["rule"],
                "properties": {
                    "rule": {"enum": sorted(RULE_NAMES)},
                    "message": {"type": "string"},
                },
            },
        },
        "scaleConfig": _BOUNDS_SCHEMA,
        "sliderConfig": _BOUNDS_SCHEMA,
        "numberConfig": _BOUNDS_SCHEMA,
        "currencyConfig": _BOUNDS_SCHEMA,
    },
}

# Shape of the model's dynamic-questions response.
DYNAMIC_QUESTIONS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["sections"],
    "properties": {
        "sections": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["id", "title", "questions"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "title": {"type": "string", "minLength": 1},
                    "description": {"type": "string"},
                    "order": {"type": "integer", "minimum": 0},
                    "questions": {"type": "array", "minItems": 1, "items": _QUESTION_SCHEMA},
                },
            },
        },
        "metadata": {"type": "object"},
    },
}


def question_set_errors(payload: Any) -> List[str]:
    validator = Draft202012Validator(DYNAMIC_QUESTIONS_SCHEMA)
    out = []
    for err in sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.absolute_path]):
        where = "/".join(str(p) for p in err.absolute_path) or "<root>"
        out.append(f"{where}: {err.message}")
    return out


def prepare_question_set(payload: Any) -> List[Dict[str, Any]]:
    """
    Check a generated question set and return its sections with canonical option values.

    Raises QuestionDefinitionError listing every schema violation, or the first
    question that cannot be turned into a validator input.
    """
    problems = question_set_errors(payload)
    if problems:
        raise QuestionDefinitionError("Invalid question set: " + "; ".join(problems[:10]))

    sections = normalize_section_questions(payload["sections"])
    for s in sections:
        Section.from_dict(s)

    ids: List[str] = [q["id"] for s in sections for q in s["questions"]]
    dupes = sorted({qid for qid in ids if ids.count(qid) > 1})
    if dupes:
        raise QuestionDefinitionError(f"Duplicate question ids: {', '.join(dupes)}")
    return sections
