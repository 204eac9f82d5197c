"""
Completion providers: the only place the pipeline talks to a model.
"""

import json
from dataclasses import dataclass

import anthropic

from swolegen.cancellation import background
from swolegen.errors import ConfigurationError, ProviderError

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 8000
DEFAULT_TIMEOUT = 120

RESPONSE_FORMAT_ANALYZER_PLAN = "analyzer_plan"
RESPONSE_FORMAT_ANALYZER_PLAN_DESCRIPTION = "Workout analyzer plan JSON"
RESPONSE_FORMAT_GENERATOR_OUTPUT = "generator_output"
RESPONSE_FORMAT_GENERATOR_OUTPUT_DESCRIPTION = "Workout generator output YAML"


@dataclass(frozen=True)
class CompletionRequest:
    """One provider call. Built fresh for every attempt, never mutated."""

    name: str
    description: str
    schema: str
    system_prompt: str
    user_prompt: str


class CompletionProvider:
    """Minimal provider interface the orchestrator depends on."""

    def validate(self):
        """Raise ConfigurationError when the provider cannot be used."""

    def complete(self, request, context=None):
        """Return the raw model text for ``request`` or raise ProviderError."""
        raise NotImplementedError


class AnthropicProvider(CompletionProvider):
    """Completion provider backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key,
        model=None,
        max_tokens=None,
        timeout=None,
        client=None,
    ):
        """
        Initialize the provider.

        Args:
            api_key: Anthropic API key
            model: Claude model to use (defaults to DEFAULT_MODEL)
            max_tokens: Maximum tokens for each response
            timeout: Per-call timeout in seconds
            client: Pre-built anthropic client (tests inject a mock here)
        """
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self.max_tokens = max_tokens or DEFAULT_MAX_TOKENS
        self.timeout = timeout or DEFAULT_TIMEOUT
        self.client = client
        if self.client is None and api_key:
            self.client = anthropic.Anthropic(api_key=api_key, timeout=self.timeout)

    def validate(self):
        if not self.api_key:
            raise ConfigurationError("api key not set")
        if self.client is None:
            raise ConfigurationError("anthropic client not configured")

    def _structured_output_params(self, request):
        """Force the schema through a single tool when the schema is JSON."""
        try:
            schema = json.loads(request.schema)
        except (TypeError, ValueError):
            return {}
        if not isinstance(schema, dict):
            return {}
        return {
            "tools": [
                {
                    "name": request.name,
                    "description": request.description,
                    "input_schema": schema,
                }
            ],
            "tool_choice": {"type": "tool", "name": request.name},
        }

    def complete(self, request, context=None):
        context = context or background()
        context.check()

        try:
            message = context.call(
                self.client.messages.create,
                model=self.model,
                max_tokens=self.max_tokens,
                system=request.system_prompt,
                messages=[{"role": "user", "content": request.user_prompt}],
                timeout=max(context.remaining(self.timeout), 0.01),
                **self._structured_output_params(request),
            )
        except anthropic.APIError as exc:
            context.check()
            raise ProviderError(f"anthropic: {exc}") from exc

        context.check()

        texts = []
        for block in message.content or []:
            block_type = getattr(block, "type", None)
            if block_type == "tool_use":
                return json.dumps(block.input)
            if block_type == "text" and block.text:
                texts.append(block.text)

        text = "\n".join(texts).strip()
        if not text:
            raise ProviderError("no message content")
        return text


class StubProvider(CompletionProvider):
    """
    Deterministic provider for tests and dry runs.

    Each programmed reply is either a string to return, an exception to raise,
    or a callable ``reply(request, context)`` whose return value is used.
    Every request received is kept in ``requests``.
    """

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.requests = []

    @property
    def calls(self):
        return len(self.requests)

    def complete(self, request, context=None):
        context = context or background()
        context.check()
        self.requests.append(request)

        index = len(self.requests) - 1
        if index >= len(self.replies):
            raise ProviderError("no more replies")

        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(request, context)

        context.check()
        return reply
