# polaris/validation/reconciler.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional, Sequence, Tuple

from polaris.app.errors import QuestionDefinitionError
from polaris.app.logging import get_logger
from polaris.validation.models import SINGLE_SELECT_KINDS, Option, Question, Section
from polaris.validation.options import looks_like_option_token
from polaris.validation.schema_builder import (
    REQUIRED_MESSAGE,
    SELECT_AT_LEAST_ONE_MESSAGE,
    ValidationOutcome,
    build_validator,
)


logger = get_logger(__name__)

MatchConfidence = Literal["exact", "normalized", "fuzzy", "none"]

INVALID_SECTIONS_MESSAGE = "Invalid sections structure"
QUESTION_NOT_FOUND_MESSAGE = "Question not found"

DEFAULT_OPTION_PREVIEW_LIMIT = 5

# Raw single-select values must be longer than this for substring matching.
SUBSTRING_MIN_LENGTH = 3

AFFIRMATIVE_TOKENS: Tuple[str, ...] = ("yes", "y", "true", "1", "on", "enabled", "agree", "active")
NEGATIVE_TOKENS: Tuple[str, ...] = ("no", "n", "false", "0", "off", "disabled", "disagree", "inactive")

_SQUASH_RE = re.compile(r"[\s_-]+")


@dataclass(frozen=True)
class OptionMatch:
    matched: Optional[str] = None
    confidence: MatchConfidence = "none"


NO_MATCH = OptionMatch()


@dataclass(frozen=True)
class PartialValidationResult:
    valid: bool
    errors: Dict[str, str] = field(default_factory=dict)
    sanitized_answers: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompleteValidationResult:
    valid: bool
    errors: Dict[str, str] = field(default_factory=dict)
    missing_required: List[str] = field(default_factory=list)
    sanitized_answers: Dict[str, Any] = field(default_factory=dict)


# -------------------------
# Option matching
# -------------------------

def _squash(s: str) -> str:
    return _SQUASH_RE.sub("", s).lower()


def _polarity(text: str) -> Optional[bool]:
    """
    True for affirmative, False for negative, None when neither or both match equally.

    Single-character tokens only count on an exact match. The longest matching
    token decides, so "disabled" is negative even though it ends in "abled".
    """
    def longest(tokens: Sequence[str]) -> int:
        best = 0
        for tok in tokens:
            if text == tok or (len(tok) >= 2 and tok in text):
                best = max(best, len(tok))
        return best

    yes, no = longest(AFFIRMATIVE_TOKENS), longest(NEGATIVE_TOKENS)
    if yes == no:
        return None
    return yes > no


def _option_polarity(opt: Option) -> Optional[bool]:
    p = _polarity(opt.value.lower().strip())
    if p is None:
        p = _polarity(opt.label.lower().strip())
    return p


def match_option(raw: str, question: Question, multi: bool = False) -> OptionMatch:
    """
    Map a submitted value onto one of the question's options.

    Strategies run from most to least certain: exact value, case-insensitive
    value or label, separator-insensitive comparison, underscore/hyphen swap,
    substring containment (single values only) and, for two-option single
    selects, affirmative/negative token matching.
    """
    options = question.options
    if not options:
        return NO_MATCH

    for opt in options:
        if opt.value == raw:
            return OptionMatch(opt.value, "exact")

    lower = raw.lower().strip()
    for opt in options:
        if opt.value.lower().strip() == lower:
            return OptionMatch(opt.value, "normalized")
    for opt in options:
        if opt.label.lower().strip() == lower:
            return OptionMatch(opt.value, "normalized")

    squashed = _squash(raw)
    if squashed:
        for opt in options:
            if _squash(opt.value) == squashed or _squash(opt.label) == squashed:
                return OptionMatch(opt.value, "fuzzy")

    to_hyphen = raw.replace("_", "-").lower()
    to_underscore = raw.replace("-", "_").lower()
    for opt in options:
        if opt.value.lower() in (to_hyphen, to_underscore):
            return OptionMatch(opt.value, "fuzzy")

    if multi:
        return NO_MATCH

    if len(lower) > SUBSTRING_MIN_LENGTH:
        for opt in options:
            v, l = opt.value.lower(), opt.label.lower()
            if (v and (lower in v or v in lower)) or (l and (lower in l or l in lower)):
                return OptionMatch(opt.value, "fuzzy")

    if question.input_kind in SINGLE_SELECT_KINDS and len(options) == 2:
        wanted = _polarity(lower)
        if wanted is not None:
            hits = [opt for opt in options if _option_polarity(opt) is wanted]
            # Both options with the same polarity is as ambiguous as none.
            if len(hits) == 1:
                return OptionMatch(hits[0].value, "fuzzy")

    return NO_MATCH


# -------------------------
# Sanitization
# -------------------------

def _is_absent(value: Any) -> bool:
    return value is None or value == ""


def _is_empty(value: Any) -> bool:
    return _is_absent(value) or (isinstance(value, list) and len(value) == 0)


def _option_summary(question: Question, limit: int = 10) -> List[Dict[str, str]]:
    return [{"value": o.value, "label": o.label} for o in question.options[:limit]]


def _sanitize_multi(answer: List[Any], question: Question) -> List[Any]:
    elements = [str(v) for v in answer if v is not None and str(v).strip()]

    matched: List[Dict[str, str]] = []
    unmatched: List[str] = []
    out: List[str] = []
    for val in elements:
        m = match_option(val, question, multi=True)
        if m.matched is not None:
            matched.append({"original": val, "normalized": m.matched, "confidence": m.confidence})
            out.append(m.matched)
        else:
            # Kept as submitted; validation reports it by name.
            unmatched.append(val)
            out.append(val)

    if unmatched:
        if not matched and all(looks_like_option_token(v) for v in unmatched):
            logger.warning(
                "Selections match no current option but look like option tokens; preserving them",
                extra={"question_id": question.id, "preserved_values": unmatched},
            )
            return elements
        logger.warning(
            "Some selections could not be matched",
            extra={
                "question_id": question.id,
                "question_kind": question.input_kind,
                "submitted": len(elements),
                "matched": len(matched),
                "unmatched_values": unmatched,
                "available_options": _option_summary(question),
            },
        )
    elif any(m["confidence"] != "exact" for m in matched):
        logger.info(
            "Normalized selections",
            extra={"question_id": question.id, "mappings": [m for m in matched if m["confidence"] != "exact"]},
        )

    deduped: List[str] = []
    seen = set()
    for v in out:
        if v not in seen:
            seen.add(v)
            deduped.append(v)
    return deduped


def _sanitize_single(answer: Any, question: Question) -> str:
    raw = str(answer).strip()
    m = match_option(raw, question, multi=False)
    if m.matched is not None:
        if m.confidence != "exact":
            logger.info(
                "Normalized single-select value",
                extra={
                    "question_id": question.id,
                    "original": raw,
                    "normalized": m.matched,
                    "confidence": m.confidence,
                },
            )
        return m.matched

    logger.warning(
        "Could not match single-select value",
        extra={
            "question_id": question.id,
            "question_kind": question.input_kind,
            "submitted_value": raw,
            "available_options": _option_summary(question),
        },
    )
    return raw


def sanitize_answer(answer: Any, question: Question) -> Any:
    """
    Map a raw answer onto the question's current options without losing it.

    Matched values come back in canonical form. Unmatched values come back as
    submitted so validation can name them. Non-selection answers are untouched.
    """
    if not question.has_options:
        return answer
    if question.is_multi_select and isinstance(answer, list):
        return _sanitize_multi(answer, question)
    if question.is_single_select and not _is_absent(answer):
        return _sanitize_single(answer, question)
    return answer


# -------------------------
# Question lookup
# -------------------------

def _index_questions(sections: Any) -> Tuple[Optional[Dict[str, Question]], Dict[str, str]]:
    # Returns (questions by id, definition errors by id); (None, {}) for an unusable section list.
    if not isinstance(sections, (list, tuple)):
        return None, {}

    index: Dict[str, Question] = {}
    broken: Dict[str, str] = {}
    for section in sections:
        if isinstance(section, Section):
            raw_questions: Sequence[Any] = section.questions
        elif isinstance(section, Mapping) and isinstance(section.get("questions"), list):
            raw_questions = section["questions"]
        else:
            continue

        for raw in raw_questions:
            if isinstance(raw, Question):
                index.setdefault(raw.id, raw)
                continue
            try:
                q = Question.from_dict(raw)
            except QuestionDefinitionError as e:
                qid = raw.get("id") if isinstance(raw, Mapping) else None
                logger.warning("Skipping malformed question", extra={"question_id": qid, "error": str(e)})
                if isinstance(qid, str) and qid:
                    broken.setdefault(qid, str(e))
                continue
            index.setdefault(q.id, q)
    return index, broken


def question_ids(sections: Any) -> FrozenSet[str]:
    # Ids declared by the section list, malformed definitions included.
    index, broken = _index_questions(sections)
    return frozenset(index or ()) | frozenset(broken)


# -------------------------
# Error messages
# -------------------------

def _options_hint(question: Question, limit: int) -> str:
    labels = question.option_labels()
    shown = ", ".join(labels[:limit])
    if len(labels) > limit:
        shown += f" and {len(labels) - limit} more"
    return shown


def _failure_message(question: Question, outcome: ValidationOutcome, limit: int) -> str:
    failures = outcome.failures
    if len(failures) == 1:
        f = failures[0]
        if f.kind == "enum":
            if question.has_options:
                return f'"{f.value}" is not a valid option. Please select from: {_options_hint(question, limit)}'
            return f'Invalid value "{f.value}". {f.message}'
        return f.message

    parts = []
    for f in failures:
        if f.kind == "enum":
            parts.append(f'"{f.value}" is not a valid option')
        elif f.path:
            parts.append(f"[{'.'.join(str(p) for p in f.path)}] {f.message}")
        else:
            parts.append(f.message)
    return "; ".join(parts)


def _preview(value: Any) -> str:
    if isinstance(value, list):
        head = ", ".join(str(v) for v in value[:3])
        return f"[{head}{'...' if len(value) > 3 else ''}]"
    return str(value)[:50]


def _missing_message(question: Question, original: Any, limit: int) -> str:
    if _is_empty(original):
        if isinstance(original, list) or question.is_multi_select:
            return SELECT_AT_LEAST_ONE_MESSAGE
        return REQUIRED_MESSAGE

    # Something was submitted and sanitization left nothing usable.
    preview = _preview(original)
    if not question.has_options:
        return f'Your answer "{preview}" doesn\'t match the current question format. Please re-enter your answer.'

    hint = _options_hint(question, limit)
    if question.input_kind == "toggle_switch":
        return (
            f'Your previous answer "{preview}" is no longer valid. '
            "This question may have been updated. Please select from the current options."
        )
    if question.is_multi_select:
        if isinstance(original, list):
            return (
                f"Your previous selections ({len(original)} items) are no longer valid. "
                f"The question options may have changed. Please make new selections from: {hint}"
            )
        return f'Your selections "{preview}" don\'t match available options. Please choose from: {hint}'
    return f'Your previous answer "{preview}" is no longer valid. Please select from: {hint}'


# -------------------------
# Validation modes
# -------------------------

def validate_partial_answers(
    answers: Mapping[str, Any],
    sections: Any,
    sanitize: bool = True,
    *,
    option_preview_limit: int = DEFAULT_OPTION_PREVIEW_LIMIT,
) -> PartialValidationResult:
    """
    Autosave validation: only the answers present are checked.

    Never raises for answer problems; a malformed question definition becomes an
    error on that question alone.
    """
    index, broken = _index_questions(sections)
    if index is None:
        return PartialValidationResult(
            valid=False,
            errors={"_general": INVALID_SECTIONS_MESSAGE},
            sanitized_answers=dict(answers),
        )

    errors: Dict[str, str] = {}
    sanitized: Dict[str, Any] = {}
    for qid, answer in answers.items():
        question = index.get(qid)
        if question is None:
            sanitized[qid] = answer
            errors[qid] = f"Validation error: {broken[qid]}" if qid in broken else QUESTION_NOT_FOUND_MESSAGE
            continue

        value = sanitize_answer(answer, question) if sanitize else answer
        sanitized[qid] = value

        try:
            validator = build_validator(question)
        except QuestionDefinitionError as e:
            errors[qid] = f"Validation error: {e}"
            continue

        outcome = validator.validate(value)
        if not outcome.ok:
            errors[qid] = _failure_message(question, outcome, option_preview_limit)

    return PartialValidationResult(valid=not errors, errors=errors, sanitized_answers=sanitized)


def validate_complete_answers(
    answers: Mapping[str, Any],
    sections: Any,
    sanitize: bool = True,
    *,
    option_preview_limit: int = DEFAULT_OPTION_PREVIEW_LIMIT,
) -> CompleteValidationResult:
    """
    Submission validation: every required question must hold a non-empty answer
    after sanitization, and every present answer must satisfy its constraints.

    When sanitization emptied a previously non-empty answer, the error names
    what was lost and the options currently on offer.
    """
    index, broken = _index_questions(sections)
    if index is None:
        return CompleteValidationResult(
            valid=False,
            errors={"_general": INVALID_SECTIONS_MESSAGE},
            sanitized_answers=dict(answers),
        )

    sanitized: Dict[str, Any] = {}
    for qid, answer in answers.items():
        question = index.get(qid)
        sanitized[qid] = sanitize_answer(answer, question) if (sanitize and question is not None) else answer

    errors: Dict[str, str] = {}
    missing: List[str] = []
    for question in index.values():
        if not question.required or not _is_empty(sanitized.get(question.id)):
            continue
        missing.append(question.id)
        errors[question.id] = _missing_message(question, answers.get(question.id), option_preview_limit)

    partial = validate_partial_answers(
        sanitized, sections, sanitize=False, option_preview_limit=option_preview_limit
    )
    for qid, message in partial.errors.items():
        errors.setdefault(qid, message)
    # Malformed definitions block submission whether or not they were answered.
    for qid, message in broken.items():
        errors.setdefault(qid, f"Validation error: {message}")

    if missing:
        logger.info("Required questions unanswered", extra={"missing_required": missing})

    return CompleteValidationResult(
        valid=not errors and not missing,
        errors=errors,
        missing_required=missing,
        sanitized_answers=sanitized,
    )
