"""Tests for settings validation, exception classification and the memory monitor."""

import os
from types import SimpleNamespace
from unittest.mock import Mock, patch

import psutil
import pytest
from pydantic import ValidationError as PydanticValidationError

from article_scout.shared.config import Settings, get_settings
from article_scout.shared.exceptions import (
    AgentQuotaExceededError,
    AgentUnavailableError,
    BrowserUnavailableError,
    ErrorCode,
    ExtractionFailedError,
    FetchError,
    InvalidInputError,
    ModelNotFoundError,
    SourceNotFoundError,
    StrategiesExhaustedError,
)
from article_scout.shared.memory import MemoryMonitor


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None, GOOGLE_API_KEY=None)

        assert settings.STRATEGY_ORDER == ["static", "rendered", "agentic"]
        assert settings.MAX_ARTICLES_PER_SOURCE == 3
        assert settings.AGENT_MIN_REQUEST_INTERVAL == 7.0
        assert settings.ENRICHMENT_MEMORY_LIMIT_MB == 280
        assert settings.agentic_enabled is False

    def test_gemini_key_alias_enables_agentic(self):
        with patch.dict(os.environ, {"GEMINI_API_KEY": "test-key"}, clear=False):
            os.environ.pop("GOOGLE_API_KEY", None)
            settings = Settings(_env_file=None)

        assert settings.GOOGLE_API_KEY == "test-key"
        assert settings.agentic_enabled is True

    @pytest.mark.parametrize("value", [2, 6])
    def test_max_articles_bounds(self, value):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, MAX_ARTICLES_PER_SOURCE=value)

    def test_strategy_order_is_normalized(self):
        settings = Settings(_env_file=None, STRATEGY_ORDER=[" Agentic", "static"])
        assert settings.STRATEGY_ORDER == ["agentic", "static"]

    @pytest.mark.parametrize("order", [["static", "crawler"], ["static", "static"]])
    def test_strategy_order_rejects_unknown_or_repeated(self, order):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, STRATEGY_ORDER=order)

    def test_strategy_order_from_environment(self):
        with patch.dict(os.environ, {"STRATEGY_ORDER": '["rendered", "static"]'}):
            settings = Settings(_env_file=None)
        assert settings.STRATEGY_ORDER == ["rendered", "static"]

    @pytest.mark.parametrize("field,value", [
        ("LOG_LEVEL", "LOUD"),
        ("ENVIRONMENT", "qa"),
        ("DATABASE_URL", "mysql://localhost/db"),
        ("HTTP_MAX_RETRIES", 0),
        ("PLAYWRIGHT_TIMEOUT", 500),
        ("AGENT_MIN_REQUEST_INTERVAL", 0),
        ("ENRICHMENT_MEMORY_LIMIT_MB", -1),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, **{field: value})

    def test_log_level_is_upper_cased(self):
        assert Settings(_env_file=None, LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestExceptions:
    def test_fetch_error_retryability(self):
        assert FetchError("https://x", status_code=None).retryable is True
        assert FetchError("https://x", status_code=429).retryable is True
        assert FetchError("https://x", status_code=503).retryable is True
        assert FetchError("https://x", status_code=404).retryable is False

    def test_fetch_error_message(self):
        error = FetchError("https://example.com", status_code=500, reason="boom")
        assert error.message == "Failed to fetch https://example.com (status: 500): boom"
        assert error.code == ErrorCode.FETCH_FAILED

    def test_permanent_agent_failures_disable_strategy(self):
        assert AgentUnavailableError("no key").disable_for_process is True
        assert BrowserUnavailableError("no chromium").disable_for_process is True
        assert AgentQuotaExceededError("quota").disable_for_process is False
        assert ExtractionFailedError("static", "oops").disable_for_process is False

    def test_strategy_is_recorded_in_details(self):
        error = BrowserUnavailableError("no chromium", strategy="enrichment", details={"path": "/x"})
        assert error.strategy == "enrichment"
        assert error.details == {"strategy": "enrichment", "path": "/x"}

    def test_to_dict(self):
        error = StrategiesExhaustedError("https://example.com", {"agentic": "quota"})
        payload = error.to_dict()

        assert payload["code"] == "STRATEGIES_EXHAUSTED"
        assert payload["type"] == "StrategiesExhaustedError"
        assert payload["details"]["failures"] == {"agentic": "quota"}
        assert payload["retryable"] is True

    def test_input_errors_are_not_retryable(self):
        assert InvalidInputError("bad").retryable is False
        assert SourceNotFoundError("abc").details == {"source_id": "abc"}
        assert ModelNotFoundError("m", "gone").model == "m"


class TestMemoryMonitor:
    @pytest.fixture
    def process(self):
        process = Mock()
        process.memory_info.return_value = SimpleNamespace(rss=300 * 1024 * 1024, vms=900 * 1024 * 1024)
        process.children.return_value = []
        return process

    def test_reads_rss_in_megabytes(self, process):
        monitor = MemoryMonitor(process)

        assert monitor.current_rss_mb() == 300
        assert monitor.exceeds(280) is True
        assert monitor.exceeds(300) is False

    def test_details(self, process):
        details = MemoryMonitor(process).details()

        assert details["rss_mb"] == 300
        assert details["vms_mb"] == 900
        assert "system_used_percent" in details

    def test_browser_children_count_towards_the_ceiling(self, process):
        browser = Mock()
        browser.memory_info.return_value = SimpleNamespace(rss=200 * 1024 * 1024, vms=0)
        exited = Mock()
        exited.memory_info.side_effect = psutil.NoSuchProcess(pid=4242)
        process.children.return_value = [browser, exited]
        monitor = MemoryMonitor(process)

        assert monitor.current_rss_mb() == 500
        assert monitor.exceeds(450) is True
        details = monitor.details()
        assert details["process_rss_mb"] == 300
        assert details["children_rss_mb"] == 200
        process.children.assert_called_with(recursive=True)

    def test_collect_garbage(self, process):
        assert MemoryMonitor(process).collect_garbage() >= 0
