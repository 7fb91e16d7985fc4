"""Search-grounded LLM agent used by the agentic extraction strategy.

The agent is built on Google's Agent Development Kit with the
``google_search`` tool. Three pieces live here:

* ``AgentRateLimiter`` enforces a minimum interval between agent calls.
* ``SearchAgent`` owns the runner, picks a model from the configured
  candidate list and scopes every query to a session that is always
  deleted afterwards.
* ``parse_agent_reply`` turns the agent's free text into a list of dicts.

The ADK modules are imported lazily so that a missing installation or API
key disables the strategy instead of breaking the whole pipeline.
"""

import asyncio
import importlib
import json
import logging
import os
import re
import time
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from article_scout.shared.config import Settings
from article_scout.shared.exceptions import (
    AgentQuotaExceededError,
    AgentUnavailableError,
    ExtractionFailedError,
    ModelNotFoundError,
    SearchToolUnsupportedError,
)

AGENT_NAME = "article_finder"

SEARCH_TOOL_UNSUPPORTED_MARKER = "Search as tool is not enabled"

AGENT_INSTRUCTION = """You find the most recent blog posts or articles published on a given website.

Always use Google Search to perform a live search. Do not rely on training data.

Every article you return must satisfy all of these rules:
1. It has a URL. Never return an empty URL or the string "null".
2. The URL is the article's own address, never a search redirect (nothing containing
   "vertexaisearch.cloud.google.com", "grounding-api-redirect" or "google.com/grounding").
3. The URL is a complete absolute URL.
4. The URL's hostname is the website's hostname (ignoring a leading "www.").
5. The URL is not the homepage or the website's blog index page.
6. The URL is not an about, contact, privacy, terms, legal, careers, jobs, team, faq,
   help, support, docs, login, signup, dashboard or app page.
7. The URL path after the domain is at least 11 characters long.
8. The title is the full headline, never a generic title such as "Blog" or "Home".

For each article provide:
- title: the complete headline
- url: the direct URL of the article page
- description: a short excerpt, or an empty string
- datePublished: the publication date in ISO 8601 (YYYY-MM-DD or YYYY-MM-DDTHH:mm:ssZ),
  or null only when no date can be found

Return ONLY a JSON array sorted newest first, with no explanatory text."""

QUERY_TEMPLATE = """Use Google Search to find the {limit} most recent blog posts or articles from {url}.

Only return articles hosted on {domain}. Check every URL: its hostname must be {domain}.
Return direct article URLs with a specific article path, never {url} itself and never
Google redirect URLs. Extract publication dates from search results whenever possible.

Return only a JSON array of objects with title, url, description and datePublished."""

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_JSON_ARRAY_SHORTEST = re.compile(r"\[[\s\S]*?\]")


def parse_agent_reply(text: Optional[str]) -> List[Dict[str, Any]]:
    """Extract the JSON array of article objects from the agent's reply.

    Tolerates markdown code fences, surrounding prose and stray control
    characters. Anything that is not a dict is dropped; nothing about the
    items' shape is trusted beyond that.
    """
    if not text:
        return []

    cleaned = _CONTROL_CHARS.sub("", _CODE_FENCE.sub("", text)).strip()

    for pattern in (_JSON_ARRAY, _JSON_ARRAY_SHORTEST):
        match = pattern.search(cleaned)
        if not match:
            continue
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            continue
        if isinstance(parsed, list):
            return [item for item in parsed if isinstance(item, dict)]
    return []


def classify_agent_error(code: Any, message: Optional[str], model: Optional[str] = None) -> Optional[Exception]:
    """Map an agent-service error to a typed exception, or ``None`` if it is not one we act on."""
    code = str(code) if code is not None else ""
    message = message or ""
    lowered = message.lower()

    if code in ("429", "RESOURCE_EXHAUSTED") or "quota" in lowered or "rate limit" in lowered:
        return AgentQuotaExceededError(
            f"Agent quota exceeded: {message}",
            details={"error_code": code, "model": model},
        )
    if SEARCH_TOOL_UNSUPPORTED_MARKER.lower() in lowered:
        return SearchToolUnsupportedError(
            f"Model does not support the search tool: {message}",
            details={"error_code": code, "model": model},
        )
    if code in ("404", "NOT_FOUND") or ("model" in lowered and "not found" in lowered):
        return ModelNotFoundError(model or "unknown", f"Model not found: {message}")
    return None


class AgentRateLimiter:
    """Minimum-interval throttle shared by every agent call in the process."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()
        self.logger = logger or logging.getLogger(__name__)

    def next_allowed_time(self) -> float:
        if self._last_call is None:
            return float("-inf")
        return self._last_call + self.min_interval

    def record_call(self) -> None:
        self._last_call = self._clock()

    async def wait(self) -> float:
        """Block until a call is allowed, record it, and return the time waited."""
        async with self._lock:
            delay = self.next_allowed_time() - self._clock()
            if delay > 0:
                self.logger.info(
                    f"Agent rate limit: waiting {delay:.1f}s",
                    extra={"delay": delay, "min_interval": self.min_interval},
                )
                await self._sleep(delay)
            else:
                delay = 0.0
            self.record_call()
            return delay


def _load_adk() -> SimpleNamespace:
    try:
        return SimpleNamespace(
            agents=importlib.import_module("google.adk.agents"),
            runners=importlib.import_module("google.adk.runners"),
            tools=importlib.import_module("google.adk.tools"),
            run_config=importlib.import_module("google.adk.agents.run_config"),
            types=importlib.import_module("google.genai.types"),
        )
    except ImportError as e:
        raise AgentUnavailableError(
            "google-adk is not installed",
            details={"error": str(e)},
        )


RunnerFactory = Callable[[str], Any]


class SearchAgent:
    """Process-wide handle on the search agent.

    The first candidate model that builds successfully is kept until the
    service reports it as not found; the handle is then cleared and the
    next call selects again, skipping models that already failed.
    """

    def __init__(
        self,
        settings: Settings,
        runner_factory: Optional[RunnerFactory] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self._runner_factory = runner_factory
        self._adk: Optional[SimpleNamespace] = None
        self._runner = None
        self.model: Optional[str] = None
        self._failed_models: set = set()

    @property
    def initialized(self) -> bool:
        return self._runner is not None

    def _adk_modules(self) -> SimpleNamespace:
        if self._adk is None:
            self._adk = _load_adk()
        return self._adk

    def _build_runner(self, model: str):
        adk = self._adk_modules()
        agent = adk.agents.LlmAgent(
            name=AGENT_NAME,
            model=model,
            description="Finds recent blog posts and articles on a website using Google Search.",
            instruction=AGENT_INSTRUCTION,
            tools=[adk.tools.google_search],
        )
        return adk.runners.InMemoryRunner(agent=agent, app_name=self.settings.AGENT_APP_NAME)

    def _ensure_runner(self):
        if self._runner is not None:
            return self._runner

        if self._runner_factory is None:
            if not self.settings.GOOGLE_API_KEY:
                raise AgentUnavailableError("GOOGLE_API_KEY is not set")
            # The genai client reads its key from the environment
            os.environ.setdefault("GOOGLE_API_KEY", self.settings.GOOGLE_API_KEY)

        factory = self._runner_factory or self._build_runner
        errors = {}
        for model in self.settings.AGENT_MODEL_CANDIDATES:
            if model in self._failed_models:
                continue
            try:
                runner = factory(model)
            except AgentUnavailableError:
                raise
            except Exception as e:
                errors[model] = str(e)
                self._failed_models.add(model)
                self.logger.warning(
                    f"Agent model {model} failed to initialize: {e}",
                    extra={"model": model},
                )
                continue

            self._runner = runner
            self.model = model
            self.logger.info("Search agent initialized", extra={"model": model})
            return runner

        raise AgentUnavailableError(
            "No agent model could be initialized",
            details={"failed_models": sorted(self._failed_models), "errors": errors},
        )

    def reset(self, failed_model: Optional[str] = None) -> None:
        """Drop the current runner so the next call selects a model again."""
        if failed_model:
            self._failed_models.add(failed_model)
        self._runner = None
        self.model = None

    @asynccontextmanager
    async def session(self, runner) -> AsyncIterator[Any]:
        """Create a conversation session and delete it on every exit path."""
        session_service = runner.session_service
        session = await session_service.create_session(
            app_name=self.settings.AGENT_APP_NAME,
            user_id=self.settings.AGENT_USER_ID,
            state={},
        )
        try:
            yield session
        finally:
            try:
                await session_service.delete_session(
                    app_name=self.settings.AGENT_APP_NAME,
                    user_id=self.settings.AGENT_USER_ID,
                    session_id=session.id,
                )
            except Exception as e:
                self.logger.warning(
                    f"Failed to delete agent session: {e}",
                    extra={"session_id": session.id},
                )

    def _user_message(self, prompt: str):
        types = self._adk_modules().types
        return types.Content(role="user", parts=[types.Part(text=prompt)])

    def _run_config(self):
        run_config = self._adk_modules().run_config
        return run_config.RunConfig(max_llm_calls=self.settings.AGENT_MAX_LLM_CALLS)

    async def ask(self, prompt: str) -> str:
        """Send one query in a fresh session and return the concatenated reply text.

        Raises:
            AgentUnavailableError: If no runner can be built
            AgentQuotaExceededError: On quota or rate-limit errors
            SearchToolUnsupportedError: If the model cannot use the search tool
            ExtractionFailedError: On any other agent failure
        """
        runner = self._ensure_runner()
        model = self.model
        try:
            async with self.session(runner) as session:
                return await self._collect_reply(runner, session, prompt, model)
        except ModelNotFoundError as e:
            self.logger.warning(
                f"Agent model {model} not found, forcing re-selection",
                extra={"model": model},
            )
            self.reset(failed_model=model)
            raise ExtractionFailedError(
                strategy="agentic",
                message=e.message,
                details={"model": model},
            ) from e

    async def _collect_reply(self, runner, session, prompt: str, model: Optional[str]) -> str:
        parts: List[str] = []
        events = 0
        try:
            async for event in runner.run_async(
                user_id=self.settings.AGENT_USER_ID,
                session_id=session.id,
                new_message=self._user_message(prompt),
                run_config=self._run_config(),
            ):
                events += 1
                error_code = getattr(event, "error_code", None)
                error_message = getattr(event, "error_message", None)
                if error_code or error_message:
                    classified = classify_agent_error(error_code, error_message, model)
                    if classified is not None:
                        raise classified
                    self.logger.warning(
                        f"Agent reported an error: {error_message}",
                        extra={"error_code": error_code, "model": model},
                    )

                content = getattr(event, "content", None)
                for part in getattr(content, "parts", None) or []:
                    text = getattr(part, "text", None)
                    if text:
                        parts.append(text)
        except (ExtractionFailedError, ModelNotFoundError):
            raise
        except Exception as e:
            classified = classify_agent_error(getattr(e, "code", None), str(e), model)
            if classified is not None:
                raise classified from e
            raise ExtractionFailedError(
                strategy="agentic",
                message=f"Agent run failed: {e}",
                details={"model": model},
            ) from e

        self.logger.debug(
            "Agent reply collected",
            extra={"model": model, "events": events, "reply_length": sum(len(p) for p in parts)},
        )
        return "\n".join(parts)


def build_query(source_url: str, domain: str, limit: int) -> str:
    return QUERY_TEMPLATE.format(url=source_url, domain=domain, limit=limit)


_rate_limiter: Optional[AgentRateLimiter] = None
_search_agent: Optional[SearchAgent] = None


def get_rate_limiter(settings: Settings) -> AgentRateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = AgentRateLimiter(settings.AGENT_MIN_REQUEST_INTERVAL)
    return _rate_limiter


def get_search_agent(settings: Settings) -> SearchAgent:
    global _search_agent
    if _search_agent is None:
        _search_agent = SearchAgent(settings)
    return _search_agent
