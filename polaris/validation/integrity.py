# polaris/validation/integrity.py
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from polaris.app.logging import get_logger


logger = get_logger(__name__)

# Completion thresholds for dynamic answers, in percent. Callers may override both.
MIN_COMPLETION_RATE = 50.0
WARN_COMPLETION_RATE = 80.0

STATIC_SIZE_WARNING = 50_000
DYNAMIC_SIZE_WARNING = 100_000

IMPORTANT_TOPIC_PATTERNS: Tuple[str, ...] = (
    "objective", "goal", "budget", "timeline", "audience", "outcome",
)

EXPECTED_BLUEPRINT_SECTIONS: Tuple[str, ...] = (
    "metadata",
    "executive_summary",
    "learning_objectives",
    "target_audience",
    "instructional_strategy",
    "content_outline",
    "resources",
    "assessment_strategy",
    "implementation_timeline",
    "success_metrics",
)


@dataclass(frozen=True)
class IntegrityReport:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sanitized_data: Any = None


def _json_size(data: Any) -> int:
    return len(json.dumps(data, ensure_ascii=False, default=str))


def _blank(v: Any) -> bool:
    return not isinstance(v, str) or not v.strip()


def validate_static_answers(static_answers: Any) -> IntegrityReport:
    """
    Check the static questionnaire before dynamic questions are requested.

    Nearly everything here is advisory: missing context produces warnings, and
    only a non-object or an entirely empty answer set is an error.
    """
    if not isinstance(static_answers, Mapping):
        return IntegrityReport(is_valid=False, errors=["Static answers is not a valid object"])

    errors: List[str] = []
    warnings: List[str] = []

    if _blank(static_answers.get("role")):
        warnings.append("Role information is recommended for better results")

    org = static_answers.get("organization")
    if isinstance(org, Mapping) and org:
        if _blank(org.get("name")):
            warnings.append("Organization name is recommended for better context")
        if _blank(org.get("industry")):
            warnings.append("Organization industry is recommended for better context")
    else:
        warnings.append("Organization information is recommended for better results")

    profile = static_answers.get("learnerProfile")
    if isinstance(profile, Mapping) and not profile.get("audienceSize"):
        warnings.append("Audience size information would help tailor the blueprint")

    gap = static_answers.get("learningGap")
    if isinstance(gap, Mapping) and gap:
        description = gap.get("description")
        if _blank(description):
            warnings.append("Learning gap description is highly recommended for accurate blueprint generation")
        elif len(description.strip()) < 20:
            warnings.append("Learning gap description seems too short. Consider providing more detail.")
        if gap.get("urgency") is None:
            warnings.append("Learning gap urgency level is recommended")
        if _blank(gap.get("objectives")):
            warnings.append("Learning objectives would help create a more targeted blueprint")
    else:
        warnings.append("Learning gap information is highly recommended for accurate results")

    resources = static_answers.get("resources")
    if isinstance(resources, Mapping):
        budget = resources.get("budget")
        if not isinstance(budget, Mapping) or not budget.get("amount"):
            warnings.append("Budget information would help tailor recommendations")
        timeline = resources.get("timeline")
        if not isinstance(timeline, Mapping) or not (timeline.get("targetDate") or timeline.get("duration")):
            warnings.append("Timeline information would help with planning")

    if not static_answers.get("deliveryStrategy"):
        warnings.append("Delivery strategy preferences would help customize the blueprint")
    if not static_answers.get("constraints"):
        warnings.append("Knowing any constraints would help create a more realistic blueprint")
    if not static_answers.get("evaluation"):
        warnings.append("Evaluation strategy preferences would enhance the assessment plan")

    size = _json_size(static_answers)
    if size > STATIC_SIZE_WARNING:
        warnings.append(f"Static answers data is very large ({size} chars). Consider simplifying.")

    if not static_answers:
        errors.append("Static answers must contain at least some data")

    logger.info(
        "Static answers checked",
        extra={"is_valid": not errors, "error_count": len(errors), "warning_count": len(warnings), "data_size": size},
    )
    return IntegrityReport(is_valid=not errors, errors=errors, warnings=warnings, sanitized_data=static_answers)


def _answered(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return value is True
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return False


def completion_rate(answers: Mapping[str, Any]) -> float:
    if not answers:
        return 0.0
    answered = sum(1 for v in answers.values() if _answered(v))
    return answered / len(answers) * 100


def validate_dynamic_answers(
    dynamic_answers: Any,
    *,
    min_completion_rate: float = MIN_COMPLETION_RATE,
    warn_completion_rate: float = WARN_COMPLETION_RATE,
) -> IntegrityReport:
    # Gate before blueprint generation: low completion is an error, moderate completion a warning.
    if not isinstance(dynamic_answers, Mapping):
        return IntegrityReport(is_valid=False, errors=["Dynamic answers is not a valid object"])

    errors: List[str] = []
    warnings: List[str] = []

    if not dynamic_answers:
        errors.append("No dynamic answers provided")

    rate = completion_rate(dynamic_answers)
    if rate < min_completion_rate:
        errors.append(
            f"Only {rate:.1f}% of questions answered. Need at least {min_completion_rate:g}% completion."
        )
    elif rate < warn_completion_rate:
        warnings.append(f"Only {rate:.1f}% of questions answered. Consider completing more for better results.")

    for topic in IMPORTANT_TOPIC_PATTERNS:
        pattern = re.compile(topic, re.IGNORECASE)
        covered = any(
            pattern.search(key) and isinstance(value, (str, list)) and _answered(value)
            for key, value in dynamic_answers.items()
        )
        if not covered:
            warnings.append(f"No answer found for questions related to: {topic}")

    size = _json_size(dynamic_answers)
    if size > DYNAMIC_SIZE_WARNING:
        warnings.append(f"Dynamic answers data is very large ({size} chars). May affect processing.")

    logger.info(
        "Dynamic answers checked",
        extra={
            "is_valid": not errors,
            "error_count": len(errors),
            "warning_count": len(warnings),
            "total_questions": len(dynamic_answers),
            "completion_rate": round(rate, 1),
            "data_size": size,
        },
    )
    return IntegrityReport(is_valid=not errors, errors=errors, warnings=warnings, sanitized_data=dynamic_answers)


def _has_content(section: Mapping[str, Any]) -> bool:
    for v in section.values():
        if isinstance(v, (list, dict)):
            if v:
                return True
        elif isinstance(v, str):
            if len(v.strip()) > 10:
                return True
        elif v is not None:
            return True
    return False


def validate_blueprint_response(
    blueprint: Any,
    expected_sections: Sequence[str] = EXPECTED_BLUEPRINT_SECTIONS,
) -> IntegrityReport:
    """
    Content-level review of a generated blueprint.

    Complements the structural check in polaris.blueprint.normalizer: this one
    looks for expected sections, thin sections and truncated output.
    """
    if not isinstance(blueprint, Mapping):
        return IntegrityReport(is_valid=False, errors=["Blueprint is not a valid object"])

    errors: List[str] = []
    warnings: List[str] = []

    missing = [s for s in expected_sections if not blueprint.get(s)]
    if missing:
        errors.append(f"Missing required sections: {', '.join(missing)}")

    for key, value in blueprint.items():
        if key == "metadata" or not isinstance(value, Mapping):
            continue
        if not _has_content(value):
            warnings.append(f"Section '{key}' appears to have minimal or no content")
        if not value.get("displayType"):
            warnings.append(f"Section '{key}' is missing displayType")

    objectives_block = blueprint.get("learning_objectives")
    if isinstance(objectives_block, Mapping) and "objectives" in objectives_block:
        objectives = objectives_block["objectives"]
        if not isinstance(objectives, list) or not objectives:
            errors.append("Learning objectives must be a non-empty array")
        elif len(objectives) < 3:
            warnings.append(f"Consider adding more learning objectives (found only {len(objectives)})")

    outline = blueprint.get("content_outline")
    if isinstance(outline, Mapping) and "modules" in outline:
        modules = outline["modules"]
        if not isinstance(modules, list) or not modules:
            errors.append("Content modules must be a non-empty array")

    dumped = json.dumps(blueprint, ensure_ascii=False, default=str)
    if dumped.endswith("...") or dumped.endswith("…"):
        errors.append("Blueprint appears to be truncated (ends with ellipsis)")

    if blueprint:
        last_key = list(blueprint.keys())[-1]
        last = blueprint[last_key]
        if last and _json_size(last) < 50:
            warnings.append(f"Last section '{last_key}' seems incomplete")

    logger.info(
        "Blueprint content checked",
        extra={
            "is_valid": not errors,
            "error_count": len(errors),
            "warning_count": len(warnings),
            "section_count": len(blueprint),
            "missing_sections": missing,
        },
    )
    return IntegrityReport(is_valid=not errors, errors=errors, warnings=warnings, sanitized_data=blueprint)


def sanitize_for_llm(data: Any, max_length: int = 100_000) -> Any:
    # Trim long strings and long lists (recursively) so a prompt payload stays bounded.
    size = _json_size(data)
    if size <= max_length or not isinstance(data, Mapping):
        return data

    logger.warning("Payload exceeds max length, trimming", extra={"original_length": size, "max_length": max_length})

    out: Dict[str, Any] = dict(data)
    for key, value in data.items():
        if isinstance(value, str) and len(value) > 5000:
            out[key] = value[:5000] + "... [truncated]"
        elif isinstance(value, list) and len(value) > 50:
            out[key] = value[:50]
        elif isinstance(value, Mapping):
            out[key] = sanitize_for_llm(value, max_length // 4)
    return out


def summarize(report: IntegrityReport, limit: Optional[int] = 3) -> str:
    # Short human-readable digest for error messages.
    items = report.errors if limit is None else report.errors[:limit]
    return "; ".join(items)
