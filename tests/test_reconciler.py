import logging

import pytest

from polaris.validation.models import Question
from polaris.validation.reconciler import (
    match_option,
    sanitize_answer,
    validate_complete_answers,
    validate_partial_answers,
)


def _question(**kw):
    base = {"id": "q", "label": "Q", "type": "radio_pills", "options": []}
    base.update(kw)
    return Question.from_dict(base)


def _opts(*pairs):
    return [{"value": v, "label": l} for v, l in pairs]


TOGGLE = _question(type="toggle_switch", options=_opts(("yes", "Yes"), ("no", "No")))
MULTI = _question(type="checkbox_pills", options=_opts(("quality", "Quality"), ("speed", "Speed"), ("cost", "Cost")))


# -------------------------
# match_option
# -------------------------

def test_match_strategies_in_order():
    q = _question(options=_opts(("self-paced", "Self Paced"), ("blended_learning", "Blended Learning")))

    assert match_option("self-paced", q).confidence == "exact"
    assert match_option("SELF-PACED", q).confidence == "normalized"
    assert match_option("self paced", q).matched == "self-paced"
    assert match_option("Self Paced", q).confidence == "normalized"
    assert match_option("selfpaced", q).confidence == "fuzzy"
    assert match_option("blended-learning", q).matched == "blended_learning"


def test_substring_match_only_for_single_values():
    q = _question(options=_opts(("instructor-led-training", "Instructor Led Training")))
    assert match_option("instructor", q).matched == "instructor-led-training"
    assert match_option("instructor", q, multi=True).matched is None


def test_substring_needs_more_than_three_characters():
    q = _question(options=_opts(("cost-reduction", "Cost Reduction")))
    assert match_option("cost", q).matched == "cost-reduction"
    assert match_option("cos", q).matched is None


@pytest.mark.parametrize("raw", ["YES", "Yes", "true", "True", "1", "on", "enabled"])
def test_toggle_affirmative_values(raw):
    assert sanitize_answer(raw, TOGGLE) == "yes"


@pytest.mark.parametrize("raw", ["NO", "No", "false", "False", "0", "off", "disabled"])
def test_toggle_negative_values(raw):
    assert sanitize_answer(raw, TOGGLE) == "no"


def test_toggle_with_custom_option_values():
    q = _question(type="toggle_switch", options=_opts(("enabled", "Turn it on"), ("disabled", "Turn it off")))
    assert sanitize_answer("true", q) == "enabled"
    assert sanitize_answer("0", q) == "disabled"


def test_ambiguous_toggle_input_is_not_defaulted():
    assert match_option("maybe", TOGGLE).matched is None
    assert sanitize_answer("maybe", TOGGLE) == "maybe"


def test_boolean_patterns_need_exactly_two_options():
    q = _question(options=_opts(("yes", "Yes"), ("no", "No"), ("unsure", "Unsure")))
    assert match_option("true", q).matched is None


# -------------------------
# sanitize_answer
# -------------------------

def test_multi_select_fuzzy_equivalence():
    assert sanitize_answer(["Quality", "SPEED", "cost"], MULTI) == ["quality", "speed", "cost"]


def test_multi_select_preserves_regenerated_tokens(caplog):
    stale = ["old-option", "another_old_one"]
    with caplog.at_level(logging.WARNING):
        out = sanitize_answer(stale, MULTI)
    assert out == stale
    assert any("preserving" in r.getMessage() for r in caplog.records)


def test_multi_select_keeps_unmatched_values_for_validation():
    out = sanitize_answer(["Quality", "Totally Unknown"], MULTI)
    assert out == ["quality", "Totally Unknown"]


def test_multi_select_dedupes_and_drops_blanks():
    assert sanitize_answer(["quality", "Quality", "  ", None], MULTI) == ["quality"]


def test_multi_select_elements_become_strings():
    q = _question(type="multiselect", options=_opts(("1", "One"), ("2", "Two")))
    assert sanitize_answer([1, 2], q) == ["1", "2"]


def test_single_select_is_trimmed_and_matched():
    q = _question(options=_opts(("instructor-led", "Instructor Led")))
    assert sanitize_answer("  Instructor Led ", q) == "instructor-led"


def test_single_select_unmatched_returns_original():
    q = _question(options=_opts(("a-option", "A")))
    assert sanitize_answer("zzz", q) == "zzz"


def test_non_selection_answers_pass_through():
    q = _question(type="text", options=None)
    assert sanitize_answer("  free text ", q) == "  free text "


# -------------------------
# validate_partial_answers
# -------------------------

def test_partial_ignores_absent_keys(sections):
    result = validate_partial_answers({"format": "Self Paced"}, sections)
    assert result.valid
    assert result.errors == {}
    assert result.sanitized_answers == {"format": "self-paced"}


def test_partial_unknown_question(sections):
    result = validate_partial_answers({"ghost": "boo"}, sections)
    assert not result.valid
    assert result.errors == {"ghost": "Question not found"}
    assert result.sanitized_answers == {"ghost": "boo"}


def test_partial_invalid_sections_structure():
    result = validate_partial_answers({"a": 1}, None)
    assert result.errors == {"_general": "Invalid sections structure"}


def test_partial_invalid_single_select_lists_options(sections):
    result = validate_partial_answers({"format": "zzz"}, sections)
    assert result.errors["format"] == (
        '"zzz" is not a valid option. Please select from: Self Paced, Instructor Led, Blended Learning'
    )


def test_partial_option_preview_is_bounded():
    q = {
        "id": "color",
        "label": "Colour",
        "type": "select",
        "options": _opts(*[(f"c{i}", f"Colour {i}") for i in range(8)]),
    }
    result = validate_partial_answers({"color": "zzz"}, [{"id": "s", "title": "S", "questions": [q]}])
    assert result.errors["color"].endswith("Colour 0, Colour 1, Colour 2, Colour 3, Colour 4 and 3 more")


def test_partial_multi_select_names_offending_values(sections):
    result = validate_partial_answers({"priorities": ["Quality", "Bad Value", "Also Bad"]}, sections)
    message = result.errors["priorities"]
    assert '"Bad Value" is not a valid option' in message
    assert '"Also Bad" is not a valid option' in message
    assert "; " in message


def test_partial_without_sanitize_checks_raw_values(sections):
    result = validate_partial_answers({"format": "Self Paced"}, sections, sanitize=False)
    assert "format" in result.errors


def test_partial_constraint_message(sections):
    result = validate_partial_answers({"objective_summary": "short"}, sections)
    assert result.errors == {"objective_summary": "Please write at least 10 characters"}


def test_malformed_question_does_not_block_others(sections):
    sections[0]["questions"].append({"id": "broken", "label": "Broken", "type": "hologram"})
    result = validate_partial_answers({"broken": "x", "format": "Self Paced"}, sections)
    assert "format" not in result.errors
    assert result.errors["broken"].startswith("Validation error:")


# -------------------------
# validate_complete_answers
# -------------------------

def _complete_answers():
    return {
        "priorities": ["Quality", "SPEED", "cost"],
        "format": "instructor led",
        "objective_summary": "Cut onboarding time in half",
    }


def test_complete_with_fuzzy_answers_is_valid(sections):
    result = validate_complete_answers(_complete_answers(), sections)
    assert result.valid, result.errors
    assert result.sanitized_answers["priorities"] == ["quality", "speed", "cost"]
    assert result.sanitized_answers["format"] == "instructor-led"
    assert result.missing_required == []


def test_complete_required_empty_array(sections):
    answers = _complete_answers()
    answers["priorities"] = []
    result = validate_complete_answers(answers, sections)
    assert not result.valid
    assert result.missing_required == ["priorities"]
    assert result.errors["priorities"] == "Please select at least one option"


def test_complete_never_answered_text_uses_required_message(sections):
    answers = _complete_answers()
    answers["objective_summary"] = ""
    result = validate_complete_answers(answers, sections)
    assert result.errors["objective_summary"] == "This field is required"
    assert "objective_summary" in result.missing_required


def test_complete_missing_key_is_required(sections):
    answers = _complete_answers()
    del answers["format"]
    result = validate_complete_answers(answers, sections)
    assert result.missing_required == ["format"]
    assert result.errors["format"] == "This field is required"


def test_complete_reports_drift_when_sanitization_empties_answer(sections):
    answers = _complete_answers()
    answers["format"] = "   "
    result = validate_complete_answers(answers, sections)
    assert "format" in result.missing_required
    message = result.errors["format"]
    assert message.startswith('Your previous answer "   " is no longer valid.')
    assert "Self Paced, Instructor Led, Blended Learning" in message


def test_complete_preserves_stale_tokens(sections):
    answers = _complete_answers()
    answers["priorities"] = ["retired-option", "older_choice"]
    result = validate_complete_answers(answers, sections)
    assert result.valid, result.errors
    assert result.sanitized_answers["priorities"] == ["retired-option", "older_choice"]


def test_complete_unmatched_single_select_is_an_error(sections):
    answers = _complete_answers()
    answers["format"] = "zzz"
    result = validate_complete_answers(answers, sections)
    assert not result.valid
    assert result.missing_required == []
    assert result.errors["format"].startswith('"zzz" is not a valid option')
    assert result.sanitized_answers["format"] == "zzz"


def test_complete_keeps_unknown_answers(sections):
    answers = _complete_answers()
    answers["legacy"] = "value"
    result = validate_complete_answers(answers, sections)
    assert result.sanitized_answers["legacy"] == "value"
    assert result.errors["legacy"] == "Question not found"


def test_complete_invalid_sections_structure():
    result = validate_complete_answers({"a": 1}, "nope")
    assert not result.valid
    assert result.errors == {"_general": "Invalid sections structure"}
    assert result.sanitized_answers == {"a": 1}


def test_validation_does_not_mutate_inputs(sections):
    answers = _complete_answers()
    snapshot = {k: (list(v) if isinstance(v, list) else v) for k, v in answers.items()}
    validate_complete_answers(answers, sections)
    assert answers == snapshot


def test_complete_reports_unanswered_malformed_question():
    sections = [
        {
            "id": "s",
            "title": "S",
            "questions": [
                {"id": "ok", "label": "OK", "type": "text"},
                {"id": "broken", "label": "Broken", "type": "hologram", "required": True},
            ],
        }
    ]
    result = validate_complete_answers({"ok": "x"}, sections)

    assert not result.valid
    assert result.errors["broken"].startswith("Validation error:")
    assert "ok" not in result.errors
