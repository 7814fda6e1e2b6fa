import json
import logging

import pytest

from polaris.app.config import Settings
from polaris.app.logging import (
    JsonFormatter,
    RequestIdFilter,
    clear_request_id,
    get_request_id,
    request_scope,
    set_request_id,
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "POLARIS_DB_PATH",
        "POLARIS_LOG_LEVEL",
        "POLARIS_LOG_JSON",
        "POLARIS_LLM_BASE_URL",
        "POLARIS_MODEL_QUESTIONS",
        "POLARIS_MODEL_BLUEPRINT",
        "POLARIS_MAX_BLUEPRINT_ATTEMPTS",
        "POLARIS_MIN_COMPLETION_RATE",
        "POLARIS_WARN_COMPLETION_RATE",
        "POLARIS_OPTION_PREVIEW_LIMIT",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_settings_defaults(clean_env, tmp_path):
    clean_env.setenv("POLARIS_DB_PATH", str(tmp_path / "nested" / "polaris.db"))
    s = Settings.from_env(load_env_file=False)

    assert (tmp_path / "nested").is_dir()
    assert s.log_level == "INFO"
    assert s.log_json is True
    assert s.llm_base_url is None
    assert s.max_blueprint_attempts == 2
    assert s.min_completion_rate == 50.0
    assert s.option_preview_limit == 5


def test_settings_overrides(clean_env):
    clean_env.setenv("POLARIS_DB_PATH", ":memory:")
    clean_env.setenv("POLARIS_LOG_JSON", "no")
    clean_env.setenv("POLARIS_LLM_BASE_URL", "http://localhost:8080/v1")
    clean_env.setenv("POLARIS_MAX_BLUEPRINT_ATTEMPTS", "0")
    clean_env.setenv("POLARIS_MIN_COMPLETION_RATE", "65.5")
    clean_env.setenv("POLARIS_OPTION_PREVIEW_LIMIT", "not-a-number")

    s = Settings.from_env(load_env_file=False)

    assert s.db_path == ":memory:"
    assert s.log_json is False
    assert s.llm_base_url == "http://localhost:8080/v1"
    assert s.max_blueprint_attempts == 1
    assert s.min_completion_rate == 65.5
    assert s.option_preview_limit == 5


def _record(msg="hello", **extra):
    record = logging.LogRecord("polaris.test", logging.INFO, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_json_formatter_includes_extras_and_request_id():
    set_request_id("req-42")
    try:
        record = _record(blueprint_id="b-1", sections=["a"], obj=object())
        RequestIdFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
    finally:
        clear_request_id()

    assert payload["msg"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "req-42"
    assert payload["blueprint_id"] == "b-1"
    assert payload["sections"] == ["a"]
    assert payload["obj"].startswith("<object object")
    assert get_request_id() is None


def test_request_scope_restores_previous_id():
    with pytest.raises(RuntimeError):
        with request_scope("submit") as request_id:
            assert request_id.startswith("submit_")
            assert get_request_id() == request_id
            raise RuntimeError("boom")
    assert get_request_id() is None
