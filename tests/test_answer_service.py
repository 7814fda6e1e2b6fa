import pytest

from polaris.app.errors import AnswerValidationError, QuestionDefinitionError
from polaris.workflows.answers import AnswerService


@pytest.fixture
def service(repository, settings):
    return AnswerService(repository, settings)


@pytest.fixture
def record_id(repository, sections):
    bid = repository.create({"role": "Trainer"})
    repository.save_dynamic_questions(bid, sections)
    return bid


def test_store_questions_normalizes_and_persists(service, repository):
    bid = repository.create()
    payload = {
        "sections": [
            {
                "id": "s1",
                "title": "Basics",
                "questions": [
                    {
                        "id": "format",
                        "label": "Format",
                        "type": "select",
                        "options": [{"value": "Blended Learning", "label": "Blended Learning"}],
                    }
                ],
            }
        ]
    }

    sections = service.store_questions(bid, payload)

    assert sections[0]["questions"][0]["options"][0]["value"] == "blended-learning"
    assert repository.get(bid).dynamic_questions == sections


def test_store_questions_rejects_duplicate_ids(service, repository):
    bid = repository.create()
    question = {"id": "q", "label": "Q", "type": "text"}
    payload = {"sections": [{"id": "s", "title": "S", "questions": [question, dict(question)]}]}
    with pytest.raises(QuestionDefinitionError):
        service.store_questions(bid, payload)
    assert repository.get(bid).dynamic_questions == []


def test_autosave_stores_sanitized_answers_even_with_errors(service, repository, record_id):
    result = service.autosave(record_id, {"format": "Self Paced", "confidence": 9})

    assert not result.valid
    assert "confidence" in result.errors
    assert repository.get(record_id).dynamic_answers == {"format": "self-paced", "confidence": 9}


def test_autosave_merges_with_previous_answers(service, repository, record_id):
    service.autosave(record_id, {"format": "self-paced"})
    service.autosave(record_id, {"priorities": ["Quality"]})

    assert repository.get(record_id).dynamic_answers == {"format": "self-paced", "priorities": ["quality"]}


def test_submit_rejects_incomplete_answers(service, repository, record_id):
    with pytest.raises(AnswerValidationError) as exc:
        service.submit(record_id, {"format": "self-paced"})

    result = exc.value.result
    assert set(result.missing_required) == {"priorities", "objective_summary"}
    assert repository.get(record_id).status == "draft"


def test_submit_counts_autosaved_answers(service, repository, record_id):
    service.autosave(record_id, {"priorities": ["Quality", "SPEED"]})

    result = service.submit(record_id, {"format": "instructor led", "objective_summary": "Halve onboarding time"})

    assert result.valid
    record = repository.get(record_id)
    assert record.status == "submitted"
    assert record.dynamic_answers == {
        "priorities": ["quality", "speed"],
        "format": "instructor-led",
        "objective_summary": "Halve onboarding time",
    }


def test_submit_ignores_answers_to_questions_no_longer_asked(service, repository, record_id):
    service.autosave(record_id, {"format": "self-paced"})
    repository.save_dynamic_questions(record_id, [
        {
            "id": "goals",
            "title": "Goals",
            "questions": [{"id": "new_goal", "label": "Main goal", "type": "text", "required": True}],
        }
    ])

    result = service.submit(record_id, {"new_goal": "Shorter onboarding"})

    assert result.valid
    assert "format" not in result.sanitized_answers
    assert repository.get(record_id).status == "submitted"
