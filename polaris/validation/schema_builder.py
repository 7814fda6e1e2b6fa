# polaris/validation/schema_builder.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import ValidationError as SchemaError

from polaris.app.errors import QuestionDefinitionError
from polaris.validation.models import (
    DATE_KINDS,
    MULTI_SELECT_KINDS,
    NUMBER_KINDS,
    SCALE_KINDS,
    SINGLE_SELECT_KINDS,
    SLIDER_KINDS,
    TEXT_KINDS,
    Bounds,
    Question,
)
from polaris.validation.options import looks_like_option_token


FailureKind = Literal[
    "required", "enum", "length", "range", "selections", "date", "format", "pattern", "type",
]

REQUIRED_MESSAGE = "This field is required"
SELECT_AT_LEAST_ONE_MESSAGE = "Please select at least one option"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ISO_DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")

_FORMAT_MESSAGES = {
    "email": "Invalid email address",
    "url": "Invalid URL",
    "iso-date": "Invalid date format",
}

_TYPE_NOUNS = {
    "string": "text",
    "integer": "a whole number",
    "number": "a number",
    "array": "a list of values",
    "boolean": "a yes/no value",
    "object": "an object",
}

# Only the formats registered below are enforced.
FORMAT_CHECKER = FormatChecker(formats=())


@FORMAT_CHECKER.checks("email")
def _is_email(instance: Any) -> bool:
    if not isinstance(instance, str):
        return True
    return _EMAIL_RE.match(instance) is not None


@FORMAT_CHECKER.checks("url")
def _is_url(instance: Any) -> bool:
    if not isinstance(instance, str):
        return True
    parsed = urlparse(instance.strip())
    return bool(parsed.scheme) and bool(parsed.netloc)


@FORMAT_CHECKER.checks("iso-date")
def _is_iso_date(instance: Any) -> bool:
    if not isinstance(instance, str):
        return True
    s = instance.strip()
    if not _ISO_DATE_PREFIX_RE.match(s):
        return False
    try:
        datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


@FORMAT_CHECKER.checks("option-token")
def _is_option_token(instance: Any) -> bool:
    return looks_like_option_token(instance)


@dataclass(frozen=True)
class ConstraintFailure:
    kind: FailureKind
    message: str
    value: Any = None
    path: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class ValidationOutcome:
    ok: bool
    value: Any = None
    failures: Tuple[ConstraintFailure, ...] = ()

    @property
    def messages(self) -> List[str]:
        return [f.message for f in self.failures]


def _is_absent(value: Any) -> bool:
    return value is None or value == ""


class AnswerValidator:
    """
    Validator for a single answer value, built from one Question.

    The base shape and constraints are expressed as a JSON Schema; `messages`
    maps a schema keyword to the question's declared failure message.
    """

    def __init__(self, question: Question, schema: Dict[str, Any], messages: Dict[str, str]):
        self.question = question
        self.schema = schema
        self.messages = dict(messages)
        self._validator = Draft202012Validator(schema, format_checker=FORMAT_CHECKER)

    @property
    def array_shaped(self) -> bool:
        return self.schema.get("type") == "array"

    def validate(self, value: Any) -> ValidationOutcome:
        if _is_absent(value):
            if not self.question.required:
                return ValidationOutcome(ok=True, value=value)
            return self._fail(ConstraintFailure(kind="required", message=REQUIRED_MESSAGE, value=value))

        if self.array_shaped and self.question.required and isinstance(value, list) and not value:
            return self._fail(ConstraintFailure(kind="required", message=SELECT_AT_LEAST_ONE_MESSAGE, value=value))

        errors = sorted(
            self._validator.iter_errors(value),
            key=lambda e: (tuple(e.absolute_path), str(e.validator)),
        )
        if not errors:
            return ValidationOutcome(ok=True, value=value)
        return ValidationOutcome(ok=False, value=value, failures=tuple(self._to_failure(e) for e in errors))

    def _fail(self, failure: ConstraintFailure) -> ValidationOutcome:
        return ValidationOutcome(ok=False, value=failure.value, failures=(failure,))

    def _to_failure(self, err: SchemaError) -> ConstraintFailure:
        kw = str(err.validator)
        limit = err.validator_value
        path = tuple(err.absolute_path)
        value = err.instance
        custom = self.messages.get(kw)

        if kw in ("enum", "anyOf"):
            return ConstraintFailure("enum", f'"{value}" is not a valid option', value, path)
        if kw == "minLength":
            return ConstraintFailure("length", custom or f"Must be at least {limit} characters", value, path)
        if kw == "maxLength":
            return ConstraintFailure("length", custom or f"Must be at most {limit} characters", value, path)
        if kw in ("minimum", "maximum"):
            bound = "at least" if kw == "minimum" else "at most"
            return ConstraintFailure("range", custom or f"Must be {bound} {_fmt_number(limit)}", value, path)
        if kw == "minItems":
            return ConstraintFailure("selections", custom or f"Select at least {limit} options", value, path)
        if kw == "maxItems":
            return ConstraintFailure("selections", custom or f"Select at most {limit} options", value, path)
        if kw == "format":
            kind: FailureKind = "date" if limit == "iso-date" else "format"
            message = self.messages.get(f"format:{limit}") or _FORMAT_MESSAGES.get(str(limit), err.message)
            return ConstraintFailure(kind, message, value, path)
        if kw == "pattern":
            return ConstraintFailure("pattern", custom or "Value does not match the expected format", value, path)
        if kw == "type":
            types = [limit] if isinstance(limit, str) else list(limit)
            expected = " or ".join(_TYPE_NOUNS.get(t, t) for t in types)
            return ConstraintFailure("type", f"Expected {expected}", value, path)
        return ConstraintFailure("type", err.message, value, path)


def _fmt_number(v: Any) -> str:
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _tighten(
    schema: Dict[str, Any],
    messages: Dict[str, str],
    keyword: str,
    limit: Any,
    message: Optional[str],
) -> None:
    # Layer a min/max constraint, keeping whichever bound is stricter.
    if limit is None:
        return
    current = schema.get(keyword)
    lower_is_stricter = keyword in ("maximum", "maxLength", "maxItems")
    if current is not None:
        stricter = limit < current if lower_is_stricter else limit > current
        if not stricter:
            return
    schema[keyword] = limit
    if message:
        messages[keyword] = message
    else:
        messages.pop(keyword, None)


def _apply_bounds(
    schema: Dict[str, Any],
    messages: Dict[str, str],
    bounds: Optional[Bounds],
    min_kw: str,
    max_kw: str,
) -> None:
    if bounds is None:
        return
    if min_kw in ("minLength", "minItems"):
        lo = int(bounds.min) if bounds.min is not None else None
        hi = int(bounds.max) if bounds.max is not None else None
    else:
        lo, hi = bounds.min, bounds.max
    _tighten(schema, messages, min_kw, lo, bounds.min_message)
    _tighten(schema, messages, max_kw, hi, bounds.max_message)


def _base_schema(question: Question) -> Dict[str, Any]:
    kind = question.input_kind
    values = question.option_values()

    if kind in TEXT_KINDS:
        schema: Dict[str, Any] = {"type": "string"}
        if kind == "email":
            schema["format"] = "email"
        elif kind == "url":
            schema["format"] = "url"
        return schema

    if kind in SINGLE_SELECT_KINDS:
        return {"enum": values} if values else {"type": "string"}

    if kind in MULTI_SELECT_KINDS:
        if not values:
            return {"type": "array", "items": {"type": "string"}}
        # Accept option-shaped tokens as well, so answers normalized against an
        # earlier option set are not rejected outright.
        return {
            "type": "array",
            "items": {
                "anyOf": [
                    {"enum": values},
                    {"type": "string", "format": "option-token"},
                ]
            },
        }

    if kind in SCALE_KINDS:
        return {"type": "integer"}

    if kind in SLIDER_KINDS or kind in NUMBER_KINDS:
        return {"type": "number"}

    if kind in DATE_KINDS:
        return {"type": "string", "format": "iso-date"}

    raise QuestionDefinitionError(f"Question {question.id}: unsupported input kind {kind!r}")


def _apply_rules(question: Question, schema: Dict[str, Any], messages: Dict[str, str]) -> None:
    is_string = schema.get("type") == "string"
    is_number = schema.get("type") in ("integer", "number")
    is_array = schema.get("type") == "array"

    for rule in question.rules:
        v = rule.value
        msg = rule.message or None
        if rule.rule == "minLength" and is_string and _is_number(v):
            _tighten(schema, messages, "minLength", int(v), msg)
        elif rule.rule == "maxLength" and is_string and _is_number(v):
            _tighten(schema, messages, "maxLength", int(v), msg)
        elif rule.rule == "min" and is_number and _is_number(v):
            _tighten(schema, messages, "minimum", v, msg)
        elif rule.rule == "max" and is_number and _is_number(v):
            _tighten(schema, messages, "maximum", v, msg)
        elif rule.rule == "minSelections" and is_array and _is_number(v):
            _tighten(schema, messages, "minItems", int(v), msg)
        elif rule.rule == "maxSelections" and is_array and _is_number(v):
            _tighten(schema, messages, "maxItems", int(v), msg)
        elif rule.rule == "pattern" and is_string and isinstance(v, str):
            try:
                re.compile(v)
            except re.error as e:
                raise QuestionDefinitionError(f"Question {question.id}: invalid pattern {v!r}: {e}") from e
            schema["pattern"] = v
            if msg:
                messages["pattern"] = msg
        elif rule.rule in ("email", "url") and is_string and "format" not in schema:
            schema["format"] = rule.rule
            if msg:
                messages[f"format:{rule.rule}"] = msg


def build_validator(question: Union[Question, Mapping[str, Any]]) -> AnswerValidator:
    """
    Build the validator for one question.

    Raises QuestionDefinitionError when the question record itself is unusable.
    """
    if not isinstance(question, Question):
        question = Question.from_dict(question)

    schema = _base_schema(question)
    messages: Dict[str, str] = {}

    kind = question.input_kind
    if kind in TEXT_KINDS:
        _apply_bounds(schema, messages, question.length_bounds, "minLength", "maxLength")
    elif kind in SCALE_KINDS:
        _apply_bounds(schema, messages, question.scale_bounds, "minimum", "maximum")
        _apply_bounds(schema, messages, question.numeric_bounds, "minimum", "maximum")
    elif kind in SLIDER_KINDS or kind in NUMBER_KINDS:
        _apply_bounds(schema, messages, question.numeric_bounds, "minimum", "maximum")
    elif kind in MULTI_SELECT_KINDS and question.max_selections is not None:
        _tighten(schema, messages, "maxItems", question.max_selections, None)

    _apply_rules(question, schema, messages)
    return AnswerValidator(question, schema, messages)
