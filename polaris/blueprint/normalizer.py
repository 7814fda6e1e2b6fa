# polaris/blueprint/normalizer.py
from __future__ import annotations

import copy
import re
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple

from polaris.app.errors import BlueprintValidationError
from polaris.app.logging import get_logger
from polaris.blueprint.parsing import EMPTY_RESPONSE, INVALID_JSON, parse_blueprint_json


logger = get_logger(__name__)

INVALID_STRUCTURE = "INVALID_STRUCTURE"
MISSING_METADATA = "MISSING_METADATA"
MISSING_METADATA_FIELD = "MISSING_METADATA_FIELD"
NO_SECTIONS = "NO_SECTIONS"

# Codes worth another generation attempt. Metadata comes from the user's own
# static answers, so a gap there goes back to the user instead.
RETRYABLE_CODES: FrozenSet[str] = frozenset({EMPTY_RESPONSE, INVALID_JSON, INVALID_STRUCTURE, NO_SECTIONS})

METADATA_KEY = "metadata"
DISPLAY_TYPE_KEY = "displayType"
REQUIRED_METADATA_FIELDS: Tuple[str, ...] = ("title", "organization", "role", "generated_at")

DISPLAY_TYPES: Tuple[str, ...] = ("infographic", "timeline", "chart", "table", "markdown")
DEFAULT_DISPLAY_TYPE = "markdown"


def is_retryable(error: BlueprintValidationError) -> bool:
    return error.code in RETRYABLE_CODES


def _is_internal_key(key: str) -> bool:
    return key.startswith("_")


def section_keys(blueprint: Mapping[str, Any]) -> List[str]:
    # Displayable sections: everything except metadata and "_"-prefixed internal keys.
    return [k for k in blueprint if isinstance(k, str) and k != METADATA_KEY and not _is_internal_key(k)]


def _blank_field(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return not v.strip()
    if isinstance(v, (list, dict)):
        return len(v) == 0
    return False


def validate_blueprint_structure(blueprint: Any) -> None:
    """
    Check the structural minimum of a generated blueprint.

    Raises BlueprintValidationError with INVALID_STRUCTURE, MISSING_METADATA,
    MISSING_METADATA_FIELD or NO_SECTIONS. A section without a display type is
    only logged; normalize_blueprint_structure fills it in.
    """
    if not isinstance(blueprint, Mapping):
        raise BlueprintValidationError(
            "Blueprint is not an object", INVALID_STRUCTURE, details={"type": type(blueprint).__name__}
        )

    metadata = blueprint.get(METADATA_KEY)
    if not isinstance(metadata, Mapping):
        raise BlueprintValidationError("Blueprint missing required metadata section", MISSING_METADATA)

    for field_name in REQUIRED_METADATA_FIELDS:
        if _blank_field(metadata.get(field_name)):
            raise BlueprintValidationError(
                f"Blueprint metadata missing required field: {field_name}",
                MISSING_METADATA_FIELD,
                details={"field": field_name},
            )

    keys = section_keys(blueprint)
    if not keys:
        raise BlueprintValidationError("Blueprint has no content sections", NO_SECTIONS)

    untagged = [
        k for k in keys
        if isinstance(blueprint[k], Mapping) and not blueprint[k].get(DISPLAY_TYPE_KEY)
    ]
    if untagged:
        logger.warning("Sections missing displayType", extra={"count": len(untagged), "sections": untagged})


# -------------------------
# Display type inference
# -------------------------

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}(-\d{2})?")

# Key tokens that mark an entry as dated; durations and period labels do not.
TIMELINE_FIELD_TOKENS = frozenset({"date", "dates", "deadline", "due"})
TABLE_FIELD_TOKENS = frozenset(
    {"role", "effort", "commitment", "probability", "likelihood", "impact", "cost",
     "amount", "budget", "fte", "owner", "mitigation", "severity"}
)
INFOGRAPHIC_FIELD_TOKENS = frozenset(
    {"target", "baseline", "metric", "kpi", "measure", "objective", "percentage"}
)
INFOGRAPHIC_SECTION_FIELDS = frozenset({"objectives", "kpis", "metrics", "demographics"})
CHART_SECTION_FIELDS = frozenset({"chartConfig", "chartType"})

TIMELINE_KEY_HINTS = ("timeline", "schedule", "implementation")
TABLE_KEY_HINTS = ("resource", "budget", "risk")
INFOGRAPHIC_KEY_HINTS = ("metric", "kpi", "objective", "audience", "assessment")


def _key_tokens(key: str) -> FrozenSet[str]:
    # "start_date" -> {start, date}; "dueDate" -> {due, date}
    spaced = _CAMEL_BOUNDARY_RE.sub("_", key).lower()
    return frozenset(t for t in _NON_ALNUM_RE.split(spaced) if t)


def _entries(section: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    # Object entries held directly in the section's list fields.
    for value in section.values():
        if isinstance(value, list):
            for item in value:
                if isinstance(item, Mapping):
                    yield item


def _entries_with_fields(section: Mapping[str, Any], tokens: FrozenSet[str]) -> bool:
    return any(
        _key_tokens(str(k)) & tokens
        for entry in _entries(section)
        for k in entry
    )


def _has_dated_entries(key: str, section: Mapping[str, Any]) -> bool:
    for entry in _entries(section):
        for k, v in entry.items():
            if _key_tokens(str(k)) & TIMELINE_FIELD_TOKENS:
                return True
            if isinstance(v, str) and _ISO_DATE_RE.match(v):
                return True
    return False


def _has_resource_entries(key: str, section: Mapping[str, Any]) -> bool:
    return _entries_with_fields(section, TABLE_FIELD_TOKENS)


def _has_metric_entries(key: str, section: Mapping[str, Any]) -> bool:
    return _entries_with_fields(section, INFOGRAPHIC_FIELD_TOKENS)


def _has_metric_fields(key: str, section: Mapping[str, Any]) -> bool:
    return any(section.get(f) for f in INFOGRAPHIC_SECTION_FIELDS)


def _has_chart_config(key: str, section: Mapping[str, Any]) -> bool:
    return any(section.get(f) for f in CHART_SECTION_FIELDS)


def _key_hints(*hints: str) -> Callable[[str, Mapping[str, Any]], bool]:
    def check(key: str, section: Mapping[str, Any]) -> bool:
        k = key.lower()
        return any(h in k for h in hints)
    return check


# Evaluated top to bottom; the first matching predicate decides the tag.
DISPLAY_TYPE_RULES: List[Tuple[str, Callable[[str, Mapping[str, Any]], bool], str]] = [
    ("dated_entries", _has_dated_entries, "timeline"),
    ("resource_entries", _has_resource_entries, "table"),
    ("metric_entries", _has_metric_entries, "infographic"),
    ("metric_fields", _has_metric_fields, "infographic"),
    ("chart_config", _has_chart_config, "chart"),
    ("timeline_key", _key_hints(*TIMELINE_KEY_HINTS), "timeline"),
    ("table_key", _key_hints(*TABLE_KEY_HINTS), "table"),
    ("infographic_key", _key_hints(*INFOGRAPHIC_KEY_HINTS), "infographic"),
]


def infer_display_type(key: str, section: Mapping[str, Any]) -> Tuple[str, Optional[str]]:
    # Returns (display type, name of the rule that matched or None for the default).
    for name, predicate, tag in DISPLAY_TYPE_RULES:
        if predicate(key, section):
            return tag, name
    return DEFAULT_DISPLAY_TYPE, None


def normalize_blueprint_structure(blueprint: Any) -> Any:
    """
    Return a copy of the blueprint with a valid displayType on every section.

    Missing tags are inferred from the section's shape; unknown tags fall back
    to markdown. The input is never mutated and non-object input is returned as is.
    """
    if not isinstance(blueprint, Mapping):
        return blueprint

    normalized: Dict[str, Any] = copy.deepcopy(dict(blueprint))
    for key in section_keys(normalized):
        section = normalized[key]
        if not isinstance(section, dict):
            continue

        tag = section.get(DISPLAY_TYPE_KEY)
        if isinstance(tag, str):
            tag = tag.strip().lower()

        if not tag:
            tag, rule = infer_display_type(key, section)
            logger.info("Inferred displayType", extra={"section": key, "display_type": tag, "rule": rule})
        elif tag not in DISPLAY_TYPES:
            logger.warning(
                "Invalid displayType",
                extra={"section": key, "invalid_type": section.get(DISPLAY_TYPE_KEY), "defaulting_to": DEFAULT_DISPLAY_TYPE},
            )
            tag = DEFAULT_DISPLAY_TYPE

        section[DISPLAY_TYPE_KEY] = tag

    return normalized


def validate_and_normalize_blueprint(text: str) -> Dict[str, Any]:
    # Parse raw model output, check its structure and fill in display types.
    blueprint = parse_blueprint_json(text)
    validate_blueprint_structure(blueprint)
    normalized = normalize_blueprint_structure(blueprint)
    logger.info("Blueprint validated", extra={"section_count": len(section_keys(normalized))})
    return normalized
