import pytest
from asset_query.config import get_settings, Settings, QueryConfig
from asset_query.config_constants import LogLevel, LOCAL_LLM_API_URL


## test for import and loading settings
def test_get_settings():
    settings = get_settings()
    assert settings is not None
    assert settings.query.max_attempts > 0
    assert settings.query.history_limit > 0
    assert settings.llm.temperature >= 0.0
    assert settings.app.log_level in LogLevel

## test for singleton
def test_get_settings_singleton():
    settings1 = get_settings()
    settings2 = get_settings()
    assert settings1 is settings2

## defaults that the query loop depends on
def test_query_loop_defaults():
    config = QueryConfig()
    assert config.max_attempts == 3
    assert config.history_limit == 10
    assert config.generation_deadline_seconds == 60.0

## nested env vars use "__" as delimiter
def test_nested_env_override(monkeypatch):
    monkeypatch.setenv("QUERY__MAX_ATTEMPTS", "5")
    monkeypatch.setenv("LLM__BASE_URL", "http://llm.internal:8080/v1")
    settings = Settings(_env_file=None)
    assert settings.query.max_attempts == 5
    assert settings.llm.base_url == "http://llm.internal:8080/v1"

def test_llm_defaults_point_at_local_server(monkeypatch):
    monkeypatch.delenv("LLM__BASE_URL", raising=False)
    settings = Settings(_env_file=None)
    assert settings.llm.base_url == LOCAL_LLM_API_URL
    assert settings.llm.default_model == "phi-3.1-mini-128k-instruct"

def test_database_has_no_statement_timeout_by_default():
    settings = Settings(_env_file=None)
    assert settings.database.query_timeout_seconds is None
    assert settings.database.enforce_read_only_default is True
