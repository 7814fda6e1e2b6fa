# polaris/validation/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional, Tuple

from polaris.app.errors import QuestionDefinitionError


InputKind = Literal[
    "text", "textarea", "email", "url",
    "radio_pills", "radio_cards", "toggle_switch", "select", "single_select",
    "checkbox_pills", "checkbox_cards", "multiselect", "multi_select",
    "scale", "enhanced_scale",
    "labeled_slider", "slider",
    "currency", "number_spinner", "number",
    "date",
]

TEXT_KINDS: FrozenSet[str] = frozenset({"text", "textarea", "email", "url"})
SINGLE_SELECT_KINDS: FrozenSet[str] = frozenset(
    {"radio_pills", "radio_cards", "toggle_switch", "select", "single_select"}
)
MULTI_SELECT_KINDS: FrozenSet[str] = frozenset(
    {"checkbox_pills", "checkbox_cards", "multiselect", "multi_select"}
)
SCALE_KINDS: FrozenSet[str] = frozenset({"scale", "enhanced_scale"})
SLIDER_KINDS: FrozenSet[str] = frozenset({"labeled_slider", "slider"})
NUMBER_KINDS: FrozenSet[str] = frozenset({"currency", "number_spinner", "number"})
DATE_KINDS: FrozenSet[str] = frozenset({"date"})

ALL_INPUT_KINDS: FrozenSet[str] = (
    TEXT_KINDS | SINGLE_SELECT_KINDS | MULTI_SELECT_KINDS
    | SCALE_KINDS | SLIDER_KINDS | NUMBER_KINDS | DATE_KINDS
)

RuleName = Literal[
    "required", "minLength", "maxLength", "min", "max",
    "minSelections", "maxSelections", "pattern", "email", "url", "custom",
]
RULE_NAMES: FrozenSet[str] = frozenset(
    {"required", "minLength", "maxLength", "min", "max",
     "minSelections", "maxSelections", "pattern", "email", "url", "custom"}
)


@dataclass(frozen=True)
class Option:
    value: str
    label: str
    description: Optional[str] = None
    disabled: bool = False

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Option":
        if not isinstance(d, Mapping):
            raise QuestionDefinitionError(f"Option must be an object, got {type(d).__name__}")
        value = d.get("value")
        label = d.get("label")
        if value is None and label is None:
            raise QuestionDefinitionError("Option needs a value or a label")
        # Either side can stand in for the other; AI output sometimes drops one.
        value_s = str(value if value is not None else label)
        label_s = str(label if label is not None else value)
        description = d.get("description")
        return Option(
            value=value_s,
            label=label_s,
            description=str(description) if description is not None else None,
            disabled=bool(d.get("disabled", False)),
        )


@dataclass(frozen=True)
class Bounds:
    min: Optional[float] = None
    max: Optional[float] = None
    min_message: Optional[str] = None
    max_message: Optional[str] = None

    def is_empty(self) -> bool:
        return self.min is None and self.max is None


@dataclass(frozen=True)
class ValidationRule:
    rule: str
    value: Any = None
    message: str = ""

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "ValidationRule":
        if not isinstance(d, Mapping):
            raise QuestionDefinitionError("Validation rule must be an object")
        rule = d.get("rule")
        if rule not in RULE_NAMES:
            raise QuestionDefinitionError(f"Unknown validation rule: {rule!r}")
        return ValidationRule(rule=str(rule), value=d.get("value"), message=str(d.get("message") or ""))


@dataclass(frozen=True)
class Question:
    id: str
    label: str
    input_kind: str
    required: bool = False
    options: Tuple[Option, ...] = ()
    numeric_bounds: Optional[Bounds] = None
    length_bounds: Optional[Bounds] = None
    scale_bounds: Optional[Bounds] = None
    rules: Tuple[ValidationRule, ...] = ()
    max_selections: Optional[int] = None

    # -------------------------
    # Input-kind helpers
    # -------------------------

    @property
    def is_multi_select(self) -> bool:
        return self.input_kind in MULTI_SELECT_KINDS

    @property
    def is_single_select(self) -> bool:
        return self.input_kind in SINGLE_SELECT_KINDS

    @property
    def has_options(self) -> bool:
        return len(self.options) > 0

    def option_values(self) -> List[str]:
        return [o.value for o in self.options]

    def option_labels(self) -> List[str]:
        return [o.label for o in self.options]

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Question":
        """
        Build a Question from its stored JSON form.

        Accepts the generator's camelCase keys (`type`, `validation`, `scaleConfig`,
        `sliderConfig`, `numberConfig`, `currencyConfig`) as well as the explicit
        `inputKind` / `numericBounds` / `lengthBounds` / `scaleBounds` / `customRules`.
        """
        if not isinstance(d, Mapping):
            raise QuestionDefinitionError(f"Question must be an object, got {type(d).__name__}")

        qid = d.get("id")
        if not isinstance(qid, str) or not qid.strip():
            raise QuestionDefinitionError("Question ID is required")

        kind = d.get("inputKind", d.get("input_kind", d.get("type")))
        if kind not in ALL_INPUT_KINDS:
            raise QuestionDefinitionError(f"Question {qid}: unknown input kind {kind!r}")

        raw_options = d.get("options") or []
        if not isinstance(raw_options, list):
            raise QuestionDefinitionError(f"Question {qid}: options must be a list")

        raw_rules = d.get("customRules", d.get("validation")) or []
        if not isinstance(raw_rules, list):
            raise QuestionDefinitionError(f"Question {qid}: validation rules must be a list")

        max_selections = d.get("maxSelections")
        if max_selections is not None and not _is_number(max_selections):
            raise QuestionDefinitionError(f"Question {qid}: maxSelections must be a number")

        return Question(
            id=qid,
            label=str(d.get("label") or ""),
            input_kind=str(kind),
            required=bool(d.get("required", False)),
            options=tuple(Option.from_dict(o) for o in raw_options),
            numeric_bounds=_numeric_bounds(qid, d),
            length_bounds=_bounds_from(qid, d.get("lengthBounds")),
            scale_bounds=_bounds_from(qid, d.get("scaleBounds", d.get("scaleConfig"))),
            rules=tuple(ValidationRule.from_dict(r) for r in raw_rules),
            max_selections=int(max_selections) if max_selections is not None else None,
        )


@dataclass(frozen=True)
class Section:
    id: str
    title: str
    questions: Tuple[Question, ...] = field(default_factory=tuple)
    description: Optional[str] = None

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Section":
        if not isinstance(d, Mapping):
            raise QuestionDefinitionError("Section must be an object")
        questions = d.get("questions")
        if not isinstance(questions, list) or not questions:
            raise QuestionDefinitionError("Each section must have at least one question")
        return Section(
            id=str(d.get("id") or ""),
            title=str(d.get("title") or ""),
            questions=tuple(Question.from_dict(q) for q in questions),
            description=d.get("description"),
        )


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _bounds_from(qid: str, raw: Any) -> Optional[Bounds]:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise QuestionDefinitionError(f"Question {qid}: bounds must be an object")
    lo, hi = raw.get("min"), raw.get("max")
    for v in (lo, hi):
        if v is not None and not _is_number(v):
            raise QuestionDefinitionError(f"Question {qid}: bounds must be numeric")
    if lo is not None and hi is not None and lo > hi:
        raise QuestionDefinitionError(f"Question {qid}: min {lo} exceeds max {hi}")
    bounds = Bounds(
        min=lo,
        max=hi,
        min_message=raw.get("minMessage") or raw.get("message"),
        max_message=raw.get("maxMessage") or raw.get("message"),
    )
    return None if bounds.is_empty() else bounds


def _numeric_bounds(qid: str, d: Mapping[str, Any]) -> Optional[Bounds]:
    # Explicit bounds win; otherwise merge the per-widget config blocks.
    explicit = _bounds_from(qid, d.get("numericBounds"))
    if explicit is not None:
        return explicit

    merged: Dict[str, Any] = {}
    for key in ("sliderConfig", "currencyConfig", "numberConfig"):
        block = d.get(key)
        if block is None:
            continue
        b = _bounds_from(qid, {k: block.get(k) for k in ("min", "max")} if isinstance(block, Mapping) else block)
        if b is None:
            continue
        if b.min is not None:
            merged["min"] = b.min if merged.get("min") is None else max(merged["min"], b.min)
        if b.max is not None:
            merged["max"] = b.max if merged.get("max") is None else min(merged["max"], b.max)
    return _bounds_from(qid, merged) if merged else None
