"""Unit tests for the search agent wrapper, its rate limiter and reply parsing."""

import asyncio
from types import SimpleNamespace

import pytest

from article_scout.core.extraction.agent import (
    AgentRateLimiter,
    SearchAgent,
    build_query,
    classify_agent_error,
    parse_agent_reply,
)
from article_scout.shared.exceptions import (
    AgentQuotaExceededError,
    AgentUnavailableError,
    ErrorCode,
    ExtractionFailedError,
    ModelNotFoundError,
    SearchToolUnsupportedError,
)


def text_event(text):
    return SimpleNamespace(
        content=SimpleNamespace(parts=[SimpleNamespace(text=text)]),
        error_code=None,
        error_message=None,
    )


def error_event(code, message):
    return SimpleNamespace(content=None, error_code=code, error_message=message)


class FakeSessionService:
    def __init__(self):
        self.created = []
        self.deleted = []

    async def create_session(self, app_name, user_id, state=None):
        session = SimpleNamespace(id=f"session-{len(self.created) + 1}")
        self.created.append(session.id)
        return session

    async def delete_session(self, app_name, user_id, session_id):
        self.deleted.append(session_id)


class FakeRunner:
    def __init__(self, events=(), error=None):
        self.events = list(events)
        self.error = error
        self.session_service = FakeSessionService()
        self.messages = []

    async def run_async(self, user_id, session_id, new_message, run_config=None):
        self.messages.append(new_message)
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error


class RunnerFactory:
    """Builds runners per model; models listed in ``broken`` fail to build."""

    def __init__(self, runners, broken=()):
        self.runners = runners
        self.broken = set(broken)
        self.built = []

    def __call__(self, model):
        self.built.append(model)
        if model in self.broken:
            raise ValueError(f"unknown model {model}")
        return self.runners[model]


@pytest.fixture
def agent_settings(test_settings):
    return test_settings.model_copy(update={"AGENT_MODEL_CANDIDATES": ["model-a", "model-b"]})


class TestParseAgentReply:
    def test_fenced_json(self):
        reply = '```json\n[{"title": "Post", "url": "https://example.com/blog/post-one"}]\n```'
        assert parse_agent_reply(reply) == [{"title": "Post", "url": "https://example.com/blog/post-one"}]

    def test_surrounding_prose(self):
        reply = 'Here is what I found:\n[{"title": "Post"}]\nLet me know if you need more.'
        assert parse_agent_reply(reply) == [{"title": "Post"}]

    def test_control_characters_are_stripped(self):
        reply = '[{"title": "Bell\x07 title"}]'
        assert parse_agent_reply(reply) == [{"title": "Bell title"}]

    def test_shortest_array_when_greedy_match_is_not_json(self):
        reply = 'Results [{"title": "Post", "url": "u"}] and footnote [1'
        reply += "] plus ]"
        assert parse_agent_reply(reply) == [{"title": "Post", "url": "u"}]

    def test_non_dict_items_are_dropped(self):
        assert parse_agent_reply('[{"a": 1}, "text", 3, null]') == [{"a": 1}]

    @pytest.mark.parametrize("reply", [None, "", "I could not find any articles.", "[not json]"])
    def test_unparseable_replies(self, reply):
        assert parse_agent_reply(reply) == []


class TestClassifyAgentError:
    @pytest.mark.parametrize("code,message", [
        ("429", "Too many requests"),
        ("RESOURCE_EXHAUSTED", "try later"),
        (None, "You exceeded your current quota"),
        ("500", "rate limit hit"),
    ])
    def test_quota_errors(self, code, message):
        error = classify_agent_error(code, message, "model-a")
        assert isinstance(error, AgentQuotaExceededError)
        assert error.code == ErrorCode.RATE_LIMIT_EXCEEDED
        assert error.disable_for_process is False

    def test_search_tool_unsupported(self):
        error = classify_agent_error("400", "Search as tool is not enabled for this model", "model-a")
        assert isinstance(error, SearchToolUnsupportedError)
        assert error.disable_for_process is True

    @pytest.mark.parametrize("code,message", [
        ("404", "gone"),
        ("NOT_FOUND", "gone"),
        (None, "models/model-x is not found for API version v1"),
    ])
    def test_model_not_found(self, code, message):
        error = classify_agent_error(code, message, "model-x")
        assert isinstance(error, ModelNotFoundError)
        assert error.model == "model-x"

    def test_unknown_errors_are_not_classified(self):
        assert classify_agent_error("500", "internal error", "model-a") is None


class FakeClock:
    def __init__(self, start=100.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.sleeps.append(delay)
        self.now += delay


class TestAgentRateLimiter:
    async def test_first_call_is_immediate(self):
        clock = FakeClock()
        limiter = AgentRateLimiter(7.0, clock=clock, sleep=clock.sleep)

        assert limiter.next_allowed_time() == float("-inf")
        assert await limiter.wait() == 0.0
        assert clock.sleeps == []

    async def test_calls_are_spaced_by_min_interval(self):
        clock = FakeClock()
        limiter = AgentRateLimiter(7.0, clock=clock, sleep=clock.sleep)
        call_times = []

        for advance in (0.0, 2.0, 10.0, 0.0):
            clock.now += advance
            await limiter.wait()
            call_times.append(clock.now)

        assert clock.sleeps == [pytest.approx(5.0), pytest.approx(7.0)]
        gaps = [b - a for a, b in zip(call_times, call_times[1:])]
        assert all(gap >= 7.0 for gap in gaps)

    async def test_concurrent_callers_are_serialized(self):
        clock = FakeClock()
        limiter = AgentRateLimiter(7.0, clock=clock, sleep=clock.sleep)

        delays = await asyncio.gather(limiter.wait(), limiter.wait(), limiter.wait())

        assert sorted(delays) == [0.0, pytest.approx(7.0), pytest.approx(7.0)]


class TestSearchAgent:
    async def test_reply_text_is_collected_and_session_deleted(self, agent_settings, mock_logger):
        runner = FakeRunner([text_event('[{"title": "A"'), text_event("}]")])
        agent = SearchAgent(agent_settings, runner_factory=RunnerFactory({"model-a": runner}), logger=mock_logger)

        reply = await agent.ask("find articles")

        assert parse_agent_reply(reply) == [{"title": "A"}]
        assert agent.model == "model-a"
        assert runner.session_service.created == ["session-1"]
        assert runner.session_service.deleted == ["session-1"]

    async def test_session_deleted_when_run_fails(self, agent_settings, mock_logger):
        runner = FakeRunner([text_event("partial")], error=RuntimeError("stream broke"))
        agent = SearchAgent(agent_settings, runner_factory=RunnerFactory({"model-a": runner}), logger=mock_logger)

        with pytest.raises(ExtractionFailedError) as exc_info:
            await agent.ask("find articles")

        assert "stream broke" in exc_info.value.message
        assert exc_info.value.strategy == "agentic"
        assert runner.session_service.deleted == ["session-1"]

    async def test_quota_event_raises_and_deletes_session(self, agent_settings, mock_logger):
        runner = FakeRunner([error_event("429", "quota exceeded")])
        agent = SearchAgent(agent_settings, runner_factory=RunnerFactory({"model-a": runner}), logger=mock_logger)

        with pytest.raises(AgentQuotaExceededError):
            await agent.ask("find articles")

        assert runner.session_service.deleted == ["session-1"]
        # Quota errors keep the selected model
        assert agent.model == "model-a"

    async def test_search_tool_unsupported_is_surfaced(self, agent_settings, mock_logger):
        runner = FakeRunner([error_event("400", "Search as tool is not enabled")])
        agent = SearchAgent(agent_settings, runner_factory=RunnerFactory({"model-a": runner}), logger=mock_logger)

        with pytest.raises(SearchToolUnsupportedError):
            await agent.ask("find articles")

        assert runner.session_service.deleted == ["session-1"]

    async def test_model_not_found_forces_reselection(self, agent_settings, mock_logger):
        failing = FakeRunner([error_event("404", "model not found")])
        working = FakeRunner([text_event("[]")])
        factory = RunnerFactory({"model-a": failing, "model-b": working})
        agent = SearchAgent(agent_settings, runner_factory=factory, logger=mock_logger)

        with pytest.raises(ExtractionFailedError) as exc_info:
            await agent.ask("find articles")

        assert not isinstance(exc_info.value, ModelNotFoundError)
        assert agent.model is None
        assert failing.session_service.deleted == ["session-1"]

        assert await agent.ask("find articles") == "[]"
        assert agent.model == "model-b"
        assert factory.built == ["model-a", "model-b"]

    async def test_models_that_fail_to_build_are_skipped(self, agent_settings, mock_logger):
        working = FakeRunner([text_event("[]")])
        factory = RunnerFactory({"model-b": working}, broken={"model-a"})
        agent = SearchAgent(agent_settings, runner_factory=factory, logger=mock_logger)

        await agent.ask("find articles")

        assert agent.model == "model-b"
        assert factory.built == ["model-a", "model-b"]

    async def test_no_buildable_model_makes_agent_unavailable(self, agent_settings, mock_logger):
        factory = RunnerFactory({}, broken={"model-a", "model-b"})
        agent = SearchAgent(agent_settings, runner_factory=factory, logger=mock_logger)

        with pytest.raises(AgentUnavailableError) as exc_info:
            await agent.ask("find articles")

        assert exc_info.value.disable_for_process is True

    async def test_missing_api_key_makes_agent_unavailable(self, agent_settings, mock_logger):
        agent = SearchAgent(agent_settings, logger=mock_logger)

        with pytest.raises(AgentUnavailableError):
            await agent.ask("find articles")


def test_build_query_names_domain_and_limit():
    query = build_query("https://www.example.com/blog", "example.com", 3)

    assert "https://www.example.com/blog" in query
    assert "hostname must be example.com" in query
    assert "3 most recent" in query
