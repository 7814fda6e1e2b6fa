# polaris/validation/options.py
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

# Shape of a stored option token. Shared by the multi-select validator (permissive
# acceptance) and the reconciler's preservation step; both must use looks_like_option_token.
CANONICAL_TOKEN_PATTERN = r"^[a-z0-9_-]+$"
_CANONICAL_TOKEN_RE = re.compile(CANONICAL_TOKEN_PATTERN)

# Stricter form emitted by generate_standard_option_value (no underscores).
_WELL_FORMATTED_RE = re.compile(r"^[a-z0-9-]+$")


def looks_like_option_token(value: Any) -> bool:
    return isinstance(value, str) and _CANONICAL_TOKEN_RE.fullmatch(value) is not None


def generate_standard_option_value(label: str) -> str:
    """
    Build the canonical option value for a display label.

    Examples:
      "Knowledge Transfer" -> "knowledge-transfer"
      "3-5 years"          -> "3-5-years"
      "Very Satisfied!"    -> "very-satisfied"
    Non-ASCII and punctuation characters are dropped, never transliterated.
    """
    s = str(label).lower().strip()
    s = re.sub(r"[\s_]+", "-", s)
    s = re.sub(r"[^a-z0-9-]", "", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


def normalize_option_value(value: str, label: Optional[str] = None) -> str:
    # Keep an already canonical value; otherwise derive it from the label (or the value itself).
    trimmed = str(value).strip()
    if trimmed and _WELL_FORMATTED_RE.fullmatch(trimmed):
        return trimmed

    if label is not None and str(label).strip():
        return generate_standard_option_value(label)

    return generate_standard_option_value(trimmed)


def normalize_question_options(question: Dict[str, Any]) -> Dict[str, Any]:
    # Returns a copy of the question with canonical option values and trimmed text fields.
    options = question.get("options")
    if not isinstance(options, list) or not options:
        return question

    normalized: List[Any] = []
    for opt in options:
        if not isinstance(opt, dict):
            normalized.append(opt)
            continue
        label = opt.get("label")
        raw_value = opt.get("value")
        if raw_value is None:
            raw_value = label if label is not None else ""
        out = dict(opt)
        out["value"] = normalize_option_value(str(raw_value), label)
        if isinstance(label, str):
            out["label"] = label.strip()
        for key in ("description", "icon"):
            if isinstance(out.get(key), str):
                out[key] = out[key].strip()
        normalized.append(out)

    return {**question, "options": normalized}


def normalize_section_questions(sections: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for section in sections or []:
        if not isinstance(section, dict) or not isinstance(section.get("questions"), list):
            out.append(section)
            continue
        out.append({
            **section,
            "questions": [
                normalize_question_options(q) if isinstance(q, dict) else q
                for q in section["questions"]
            ],
        })
    return out
