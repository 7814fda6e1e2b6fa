import json
import logging

import pytest

from polaris.agents.blueprint_agent import BlueprintAgent
from polaris.agents.question_generator_agent import QuestionGeneratorAgent
from polaris.app.errors import AnswerValidationError, InsufficientAnswersError
from polaris.app.logging import get_request_id
from polaris.workflows.blueprints import BlueprintService

from conftest import FakeLLM, blueprint_text


STATIC = {
    "role": "L&D Manager",
    "organization": {"name": "Acme", "industry": "Logistics"},
    "learningGap": {"description": "New hires take four months to reach full productivity."},
}


@pytest.fixture
def service(settings, repository, sections):
    questions = FakeLLM(json.dumps({"sections": sections}))
    blueprint = FakeLLM(blueprint_text(
        implementation_timeline={"phases": [{"phase": "Pilot", "start_date": "2026-02-01"}]},
    ))
    return BlueprintService(
        settings,
        repository,
        question_agent=QuestionGeneratorAgent(llm=questions),
        blueprint_agent=BlueprintAgent(llm=blueprint),
    )


def test_full_lifecycle(service, repository):
    started = service.start(STATIC, user_id="u-1")
    bid = started["blueprint_id"]
    assert repository.get(bid).static_answers == STATIC

    sections = service.request_questions(bid)
    assert [s["id"] for s in sections] == ["goals", "details"]

    partial = service.autosave(bid, {"priorities": ["Quality", "SPEED"], "confidence": 7})
    assert set(partial.errors) == {"confidence"}

    with pytest.raises(AnswerValidationError):
        service.submit(bid, {"confidence": 4})

    result = service.submit(bid, {
        "confidence": 4,
        "format": "Blended Learning",
        "objective_summary": "Cut time to productivity in half",
    })
    assert result.valid
    assert result.sanitized_answers["format"] == "blended-learning"

    blueprint = service.generate(bid)
    assert blueprint["implementation_timeline"]["displayType"] == "timeline"
    assert repository.get(bid).status == "completed"
    assert get_request_id() is None


def test_start_rejects_empty_static_answers(service):
    with pytest.raises(InsufficientAnswersError):
        service.start({})


def test_start_returns_context_warnings(service):
    started = service.start({"role": "Trainer"})
    assert "Organization information is recommended for better results" in started["warnings"]


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_from_env_initializes_storage(monkeypatch, tmp_path, restore_root_logger):
    monkeypatch.setenv("POLARIS_DB_PATH", str(tmp_path / "db" / "polaris.db"))
    monkeypatch.setenv("POLARIS_LOG_JSON", "false")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    service = BlueprintService.from_env(load_env_file=False)
    bid = service.start(STATIC)["blueprint_id"]

    assert service.repository.get(bid).status == "draft"
    assert logging.getLogger().handlers
