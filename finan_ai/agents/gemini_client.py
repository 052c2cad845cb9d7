"""
Gemini Client

Thin, stateless wrapper around google-generativeai. One call is one
request and one response; there are no retries. Conversation state lives
in the caller's chat history, not here.

WHY A WRAPPER:
1. Every SDK failure becomes one exception type (AIServiceError) that
   carries a message safe to show the user
2. Responses are reduced to plain data (text, function calls, grounding
   sources) so nothing downstream touches SDK objects
3. Tests replace the model factory instead of the network
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

import google.generativeai as genai
import structlog

from finan_ai.config import GeminiSettings, get_settings
from finan_ai.models.finance import ChatMessage, ChatRole


logger = structlog.get_logger(__name__)

# google-generativeai's shorthand for Google Search grounding
SEARCH_TOOL = "google_search_retrieval"

Content = Union[str, list[Any]]


class AIServiceError(Exception):
    """
    The AI service could not produce a reply.

    user_message is shown in the UI; the original error is chained.
    """

    def __init__(self, user_message: str, operation: str = "generate"):
        super().__init__(user_message)
        self.user_message = user_message
        self.operation = operation


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GroundingSource:
    title: str
    uri: str


@dataclass
class GeminiReply:
    """Plain-data view of one model response."""
    text: str = ""
    function_calls: list[FunctionCall] = field(default_factory=list)
    grounding_sources: list[GroundingSource] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.function_calls


def _plain(value: Any) -> Any:
    """Convert proto map/list composites into dicts and lists."""
    if hasattr(value, "items"):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)) or (
        hasattr(value, "__iter__") and not isinstance(value, (str, bytes))
    ):
        return [_plain(v) for v in value]
    return value


def parse_response(response: Any) -> GeminiReply:
    """
    Reduce an SDK response to a GeminiReply.

    Reads candidates[0].content.parts directly: response.text raises when
    the reply holds only function calls or was blocked.
    """
    reply = GeminiReply()
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return reply

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    texts = []
    for part in getattr(content, "parts", None) or []:
        call = getattr(part, "function_call", None)
        if call is not None and getattr(call, "name", ""):
            args = getattr(call, "args", None) or {}
            reply.function_calls.append(FunctionCall(name=call.name, args=_plain(args)))
        text = getattr(part, "text", "")
        if text:
            texts.append(text)
    reply.text = "".join(texts)

    metadata = getattr(candidate, "grounding_metadata", None)
    for chunk in getattr(metadata, "grounding_chunks", None) or []:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", "") if web is not None else ""
        if uri:
            reply.grounding_sources.append(
                GroundingSource(title=getattr(web, "title", "") or uri, uri=uri)
            )

    return reply


def history_to_contents(history: list[ChatMessage]) -> list[dict]:
    """Chat history in the SDK's content format. Tool notes become model turns."""
    contents = []
    for message in history:
        role = "user" if message.role == ChatRole.USER else "model"
        contents.append({"role": role, "parts": [message.text]})
    return contents


class GeminiClient:
    """
    Gemini access for all agents.

    Usage:
        client = GeminiClient()
        reply = await client.generate("Hello", model=client.models.flash)
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model_factory: Optional[Callable[..., Any]] = None,
    ):
        """
        Args:
            settings: Gemini settings (defaults to the environment)
            model_factory: Builds model objects; defaults to
                genai.GenerativeModel. Tests pass a fake.
        """
        self._settings = settings or get_settings().gemini
        if model_factory is None:
            genai.configure(api_key=self._settings.api_key)
            model_factory = genai.GenerativeModel
        self._model_factory = model_factory

    @property
    def settings(self) -> GeminiSettings:
        return self._settings

    def _generation_config(
        self,
        response_schema: Optional[dict],
        max_output_tokens: Optional[int],
    ) -> dict:
        config: dict[str, Any] = {
            "temperature": self._settings.temperature,
            "max_output_tokens": max_output_tokens or self._settings.max_tokens,
        }
        if response_schema is not None:
            config["response_mime_type"] = "application/json"
            config["response_schema"] = response_schema
        return config

    async def generate(
        self,
        contents: Content,
        model: str,
        system_instruction: Optional[str] = None,
        history: Optional[list[ChatMessage]] = None,
        response_schema: Optional[dict] = None,
        tools: Any = None,
        max_output_tokens: Optional[int] = None,
        operation: str = "generate",
    ) -> GeminiReply:
        """
        Send one request.

        Args:
            contents: Prompt text, or a list of parts (text and
                {"mime_type", "data"} blobs)
            model: Model name
            system_instruction: System prompt
            history: Earlier turns, oldest first
            response_schema: JSON schema; switches the reply to JSON mode
            tools: Function declarations or SEARCH_TOOL
            max_output_tokens: Override of the configured output budget
            operation: Label used in logs and errors

        Raises:
            AIServiceError: The SDK raised for any reason
        """
        parts = contents if isinstance(contents, list) else [contents]
        request = history_to_contents(history or [])
        request.append({"role": "user", "parts": parts})

        try:
            generative_model = self._model_factory(
                model_name=model,
                system_instruction=system_instruction,
                generation_config=self._generation_config(response_schema, max_output_tokens),
                tools=tools,
            )
            response = await generative_model.generate_content_async(
                request,
                request_options={"timeout": self._settings.request_timeout_seconds},
            )
        except Exception as e:
            logger.error("gemini_request_failed", operation=operation, model=model, error=str(e))
            raise AIServiceError(
                "The AI service is unavailable right now. Please try again later.",
                operation=operation,
            ) from e

        reply = parse_response(response)
        logger.debug(
            "gemini_reply",
            operation=operation,
            model=model,
            text_length=len(reply.text),
            function_calls=len(reply.function_calls),
        )
        return reply
