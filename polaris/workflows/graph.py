# polaris/workflows/graph.py
from __future__ import annotations

from typing import Any, Dict, Optional

from langgraph.graph import END, StateGraph

from polaris.agents.blueprint_agent import BlueprintAgent
from polaris.agents.utils import AgentError
from polaris.app.config import Settings
from polaris.app.errors import BlueprintValidationError, InsufficientAnswersError
from polaris.app.logging import get_logger
from polaris.blueprint.normalizer import (
    RETRYABLE_CODES,
    normalize_blueprint_structure,
    validate_blueprint_structure,
)
from polaris.db.repository import BlueprintRepository
from polaris.validation.integrity import summarize, validate_blueprint_response, validate_dynamic_answers
from polaris.workflows.state import GenerationState, step_error


logger = get_logger(__name__)

INSUFFICIENT_ANSWERS = "INSUFFICIENT_ANSWERS"
GENERATION_FAILED = "GENERATION_FAILED"


def build_graph(
    settings: Settings,
    blueprint_agent: Optional[BlueprintAgent] = None,
    repository: Optional[BlueprintRepository] = None,
):
    """
    check_answers -> generate -> validate -> normalize -> persist

    Structural defects with a retryable code loop back to generate until
    settings.max_blueprint_attempts is reached; anything else ends in `fail`.
    """
    agent = blueprint_agent or BlueprintAgent(settings.blueprint_model, base_url=settings.llm_base_url)

    workflow = StateGraph(GenerationState)

    # --- Nodes ---

    def check_answers(state: GenerationState) -> Dict[str, Any]:
        report = validate_dynamic_answers(
            state.dynamic_answers,
            min_completion_rate=settings.min_completion_rate,
            warn_completion_rate=settings.warn_completion_rate,
        )
        if not report.is_valid:
            return {"error": step_error(INSUFFICIENT_ANSWERS, summarize(report)), "warnings": report.warnings}
        return {"error": None, "warnings": report.warnings}

    def generate(state: GenerationState) -> Dict[str, Any]:
        attempts = state.attempts + 1
        logger.info("Generating blueprint", extra={"blueprint_id": state.blueprint_id, "attempt": attempts})
        try:
            patch = agent.run(state)
        except BlueprintValidationError as e:
            logger.warning("Blueprint output rejected", extra={"code": e.code, "attempt": attempts})
            return {"attempts": attempts, "raw_blueprint": None, "error": step_error(e.code, e.args[0])}
        except AgentError as e:
            return {"attempts": attempts, "raw_blueprint": None, "error": step_error(GENERATION_FAILED, str(e))}
        return {"attempts": attempts, "raw_blueprint": patch.get("raw_blueprint"), "error": None}

    def validate(state: GenerationState) -> Dict[str, Any]:
        if state.error:
            return {"error": state.error}
        try:
            validate_blueprint_structure(state.raw_blueprint)
        except BlueprintValidationError as e:
            logger.warning("Blueprint structure rejected", extra={"code": e.code, "attempt": state.attempts})
            return {"error": step_error(e.code, e.args[0], e.details)}
        return {"error": None}

    def normalize(state: GenerationState) -> Dict[str, Any]:
        blueprint = normalize_blueprint_structure(state.raw_blueprint)
        # Content review is advisory once the structure has passed.
        review = validate_blueprint_response(blueprint)
        return {"blueprint": blueprint, "warnings": list(state.warnings) + review.errors + review.warnings}

    def persist(state: GenerationState) -> Dict[str, Any]:
        if repository is not None and state.blueprint_id:
            repository.save_blueprint(state.blueprint_id, state.blueprint)
        return {"status": "completed"}

    def fail(state: GenerationState) -> Dict[str, Any]:
        error = state.error or step_error(GENERATION_FAILED, "Generation stopped without a result")
        logger.error(
            "Blueprint generation failed",
            extra={"blueprint_id": state.blueprint_id, "code": error.get("code"), "attempts": state.attempts},
        )
        if repository is not None and state.blueprint_id:
            repository.set_status(state.blueprint_id, "error", last_error=f"[{error.get('code')}] {error.get('message')}")
        return {"status": "error", "error": error}

    workflow.add_node("check_answers", check_answers)
    workflow.add_node("generate", generate)
    workflow.add_node("validate", validate)
    workflow.add_node("normalize", normalize)
    workflow.add_node("persist", persist)
    workflow.add_node("fail", fail)

    # --- Edges ---

    workflow.set_entry_point("check_answers")

    def after_check(state: GenerationState) -> str:
        return "fail" if state.error else "generate"

    def after_validate(state: GenerationState) -> str:
        if not state.error:
            return "normalize"
        if state.error.get("code") in RETRYABLE_CODES and state.attempts < settings.max_blueprint_attempts:
            return "generate"
        return "fail"

    workflow.add_conditional_edges("check_answers", after_check, ["generate", "fail"])
    workflow.add_edge("generate", "validate")
    workflow.add_conditional_edges("validate", after_validate, ["normalize", "generate", "fail"])
    workflow.add_edge("normalize", "persist")
    workflow.add_edge("persist", END)
    workflow.add_edge("fail", END)

    return workflow.compile()


def generate_blueprint(
    blueprint_id: str,
    settings: Settings,
    repository: BlueprintRepository,
    blueprint_agent: Optional[BlueprintAgent] = None,
) -> Dict[str, Any]:
    """
    Run the generation graph for a stored record and return the normalized blueprint.

    Raises InsufficientAnswersError when the answers are too incomplete, and
    BlueprintValidationError when the model's output stays unusable.
    """
    record = repository.get(blueprint_id)
    repository.set_status(blueprint_id, "generating")

    app = build_graph(settings, blueprint_agent=blueprint_agent, repository=repository)
    try:
        result = app.invoke({
            "blueprint_id": blueprint_id,
            "static_answers": record.static_answers,
            "dynamic_questions": record.dynamic_questions,
            "dynamic_answers": record.dynamic_answers,
        })
    except Exception as e:
        logger.exception("Blueprint generation crashed", extra={"blueprint_id": blueprint_id})
        repository.set_status(blueprint_id, "error", last_error=f"[{GENERATION_FAILED}] {e}")
        raise

    error = result.get("error")
    if error:
        if error.get("code") == INSUFFICIENT_ANSWERS:
            raise InsufficientAnswersError(error.get("message", ""))
        raise BlueprintValidationError(error.get("message", ""), error.get("code", GENERATION_FAILED), error.get("details"))
    return result["blueprint"]
