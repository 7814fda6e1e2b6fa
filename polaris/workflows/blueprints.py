# polaris/workflows/blueprints.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from polaris.agents.blueprint_agent import BlueprintAgent
from polaris.agents.question_generator_agent import QuestionGeneratorAgent
from polaris.app.config import Settings
from polaris.app.errors import InsufficientAnswersError
from polaris.app.logging import get_logger, request_scope, setup_logging
from polaris.db.repository import BlueprintRepository
from polaris.validation.integrity import summarize, validate_static_answers
from polaris.validation.reconciler import CompleteValidationResult, PartialValidationResult
from polaris.workflows.answers import AnswerService
from polaris.workflows.graph import generate_blueprint


logger = get_logger(__name__)


class BlueprintService:
    """
    Entry point for one blueprint's lifecycle:

      start -> request_questions -> autosave* -> submit -> generate

    Every call runs under its own request id so its log lines can be grouped.
    Agents are created from settings unless injected.
    """

    def __init__(
        self,
        settings: Settings,
        repository: BlueprintRepository,
        question_agent: Optional[QuestionGeneratorAgent] = None,
        blueprint_agent: Optional[BlueprintAgent] = None,
    ):
        self.settings = settings
        self.repository = repository
        self.answers = AnswerService(repository, settings)
        self._question_agent = question_agent
        self._blueprint_agent = blueprint_agent

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "BlueprintService":
        settings = Settings.from_env(load_env_file=load_env_file)
        setup_logging(settings.log_level, json_logs=settings.log_json)
        repository = BlueprintRepository(settings.db_path)
        repository.init_schema()
        return cls(settings, repository)

    # -------------------------
    # Lifecycle
    # -------------------------

    def start(self, static_answers: Mapping[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
        # Returns {"blueprint_id", "warnings"}; only unusable static answers are refused.
        with request_scope("start"):
            report = validate_static_answers(static_answers)
            if not report.is_valid:
                raise InsufficientAnswersError(summarize(report))
            blueprint_id = self.repository.create(dict(static_answers), user_id=user_id)
            if report.warnings:
                logger.info(
                    "Static answers accepted with warnings",
                    extra={"blueprint_id": blueprint_id, "warnings": report.warnings},
                )
            return {"blueprint_id": blueprint_id, "warnings": report.warnings}

    def request_questions(self, blueprint_id: str) -> List[Dict[str, Any]]:
        with request_scope("questions"):
            record = self.repository.get(blueprint_id)
            agent = self._question_agent or QuestionGeneratorAgent(
                self.settings.question_model, base_url=self.settings.llm_base_url
            )
            patch = agent.run({"static_answers": record.static_answers})
            # Stored answers are kept; submit ignores ids the new set no longer declares.
            return self.answers.store_questions(blueprint_id, {"sections": patch["dynamic_questions"]})

    def autosave(self, blueprint_id: str, answers: Mapping[str, Any]) -> PartialValidationResult:
        with request_scope("autosave"):
            return self.answers.autosave(blueprint_id, answers)

    def submit(self, blueprint_id: str, answers: Mapping[str, Any]) -> CompleteValidationResult:
        with request_scope("submit"):
            return self.answers.submit(blueprint_id, answers)

    def generate(self, blueprint_id: str) -> Dict[str, Any]:
        with request_scope("generate"):
            return generate_blueprint(
                blueprint_id,
                self.settings,
                self.repository,
                blueprint_agent=self._blueprint_agent,
            )
