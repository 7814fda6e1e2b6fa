# polaris/workflows/answers.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping

from polaris.app.config import Settings
from polaris.app.errors import AnswerValidationError
from polaris.app.logging import get_logger
from polaris.db.repository import BlueprintRepository
from polaris.validation.questionnaire import prepare_question_set
from polaris.validation.reconciler import (
    CompleteValidationResult,
    PartialValidationResult,
    question_ids,
    validate_complete_answers,
    validate_partial_answers,
)


logger = get_logger(__name__)


class AnswerService:
    """
    Persistence-facing side of answer validation.

    Stored answers are always the sanitized map returned by the reconciler,
    never the raw client payload.
    """

    def __init__(self, repository: BlueprintRepository, settings: Settings):
        self.repository = repository
        self.settings = settings

    def store_questions(self, blueprint_id: str, payload: Mapping[str, Any]) -> List[Dict[str, Any]]:
        # Generated question sets replace the previous set wholesale.
        sections = prepare_question_set(payload)
        self.repository.save_dynamic_questions(blueprint_id, sections)
        logger.info(
            "Dynamic questions stored",
            extra={
                "blueprint_id": blueprint_id,
                "sections": len(sections),
                "questions": sum(len(s["questions"]) for s in sections),
            },
        )
        return sections

    def autosave(self, blueprint_id: str, answers: Mapping[str, Any]) -> PartialValidationResult:
        # Never blocks: answers are stored even when some of them have errors.
        record = self.repository.get(blueprint_id)
        result = validate_partial_answers(
            answers,
            record.dynamic_questions,
            option_preview_limit=self.settings.option_preview_limit,
        )
        self.repository.merge_dynamic_answers(blueprint_id, result.sanitized_answers)

        if not result.valid:
            logger.info(
                "Autosave stored answers with validation errors",
                extra={"blueprint_id": blueprint_id, "error_ids": sorted(result.errors)},
            )
        return result

    def submit(self, blueprint_id: str, answers: Mapping[str, Any]) -> CompleteValidationResult:
        record = self.repository.get(blueprint_id)
        # Earlier autosaves count towards completeness, but only for questions
        # still in the current set; a regenerated set can drop stored ids.
        current = question_ids(record.dynamic_questions)
        stored = {k: v for k, v in record.dynamic_answers.items() if k in current}
        combined = {**stored, **answers}
        result = validate_complete_answers(
            combined,
            record.dynamic_questions,
            option_preview_limit=self.settings.option_preview_limit,
        )
        if not result.valid:
            logger.info(
                "Submission rejected",
                extra={
                    "blueprint_id": blueprint_id,
                    "missing_required": result.missing_required,
                    "error_ids": sorted(result.errors),
                },
            )
            raise AnswerValidationError("Some answers need attention before submission", result)

        self.repository.merge_dynamic_answers(blueprint_id, result.sanitized_answers, status="submitted")
        logger.info("Answers submitted", extra={"blueprint_id": blueprint_id, "answers": len(result.sanitized_answers)})
        return result
