import json
from pathlib import Path
from typing import Any, Dict, List

import pytest

from polaris.app.config import Settings
from polaris.db.repository import BlueprintRepository


class FakeMessage:
    def __init__(self, content: str):
        self.content = content


class FakeLLM:
    # Returns queued replies in order; records the prompts it was given.
    def __init__(self, *replies: str):
        self.replies: List[str] = list(replies)
        self.calls: List[Any] = []

    def invoke(self, messages):
        self.calls.append(messages)
        if not self.replies:
            raise AssertionError("FakeLLM ran out of replies")
        return FakeMessage(self.replies.pop(0))


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        db_path=str(tmp_path / "polaris.db"),
        log_level="INFO",
        log_json=True,
        llm_base_url=None,
        question_model="test-question-model",
        blueprint_model="test-blueprint-model",
        max_blueprint_attempts=2,
        min_completion_rate=50.0,
        warn_completion_rate=80.0,
        option_preview_limit=5,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def repository(settings: Settings) -> BlueprintRepository:
    repo = BlueprintRepository(settings.db_path)
    repo.init_schema()
    return repo


@pytest.fixture
def sections() -> List[Dict[str, Any]]:
    return [
        {
            "id": "goals",
            "title": "Goals",
            "questions": [
                {
                    "id": "priorities",
                    "label": "What matters most?",
                    "type": "checkbox_pills",
                    "required": True,
                    "options": [
                        {"value": "quality", "label": "Quality"},
                        {"value": "speed", "label": "Speed"},
                        {"value": "cost", "label": "Cost"},
                    ],
                },
                {
                    "id": "format",
                    "label": "Preferred delivery format",
                    "type": "radio_pills",
                    "required": True,
                    "options": [
                        {"value": "self-paced", "label": "Self Paced"},
                        {"value": "instructor-led", "label": "Instructor Led"},
                        {"value": "blended_learning", "label": "Blended Learning"},
                    ],
                },
                {
                    "id": "has_lms",
                    "label": "Do you have an LMS?",
                    "type": "toggle_switch",
                    "required": False,
                    "options": [
                        {"value": "yes", "label": "Yes"},
                        {"value": "no", "label": "No"},
                    ],
                },
            ],
        },
        {
            "id": "details",
            "title": "Details",
            "questions": [
                {
                    "id": "objective_summary",
                    "label": "Describe the objective",
                    "type": "textarea",
                    "required": True,
                    "validation": [
                        {"rule": "minLength", "value": 10, "message": "Please write at least 10 characters"}
                    ],
                },
                {
                    "id": "confidence",
                    "label": "Confidence",
                    "type": "scale",
                    "required": False,
                    "scaleConfig": {"min": 1, "max": 5},
                },
                {
                    "id": "budget_amount",
                    "label": "Budget",
                    "type": "currency",
                    "required": False,
                    "currencyConfig": {"min": 0, "max": 100000},
                },
                {
                    "id": "launch_date",
                    "label": "Launch date",
                    "type": "date",
                    "required": False,
                },
            ],
        },
    ]


def blueprint_doc(**extra: Any) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "metadata": {
            "title": "Onboarding Program",
            "organization": "Acme",
            "role": "L&D Manager",
            "generated_at": "2026-01-15T10:00:00Z",
        },
        "executive_summary": {"displayType": "markdown", "content": "A program to speed up onboarding."},
    }
    doc.update(extra)
    return doc


def blueprint_text(**extra: Any) -> str:
    return json.dumps(blueprint_doc(**extra))
