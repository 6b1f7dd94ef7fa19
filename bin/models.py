"""Docket chat data model: provider-neutral request/response contract.

Wire payloads (Flask JSON bodies) use camelCase keys; the dataclasses use
snake_case. from_dict() accepts either spelling and raises ApiError with
code INVALID_REQUEST for malformed input.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from errors import INVALID_REQUEST, ApiError


DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4000
ROLES = ("user", "assistant", "system")


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _bad(message: str) -> ApiError:
    return ApiError(INVALID_REQUEST, message)


@dataclass
class ChatMessage:
    role: str
    content: str

    @classmethod
    def from_dict(cls, data: Any) -> "ChatMessage":
        if not isinstance(data, dict):
            raise _bad("message must be an object")
        role = data.get("role")
        content = data.get("content")
        if role not in ROLES:
            raise _bad(f"message role must be one of {', '.join(ROLES)}")
        if not isinstance(content, str):
            raise _bad("message content must be a string")
        return cls(role=role, content=content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ProviderTarget:
    """Provider identity plus the credential resolved by the caller."""

    provider: str
    model: str
    api_key: str = field(default="", repr=False)
    endpoint: Optional[str] = None
    supports_temperature: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> "ProviderTarget":
        if not isinstance(data, dict):
            raise _bad("provider must be an object")
        provider = _pick(data, "provider", "id")
        model = _pick(data, "model")
        if not isinstance(provider, str) or not provider:
            raise _bad("provider id is required")
        if not isinstance(model, str) or not model:
            raise _bad("provider model is required")
        endpoint = _pick(data, "endpoint")
        return cls(
            provider=provider,
            model=model,
            api_key=str(_pick(data, "api_key", "apiKey", default="")),
            endpoint=endpoint if isinstance(endpoint, str) and endpoint.strip() else None,
            supports_temperature=bool(_pick(data, "supports_temperature", "supportsTemperature", default=True)),
        )

    def with_endpoint(self, endpoint: str) -> "ProviderTarget":
        return replace(self, endpoint=endpoint)


@dataclass
class ChatRequest:
    provider: ProviderTarget
    messages: List[ChatMessage]
    system_prompt: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS

    @classmethod
    def from_dict(cls, data: Any) -> "ChatRequest":
        if not isinstance(data, dict):
            raise _bad("request body must be a JSON object")
        raw_messages = data.get("messages")
        if not isinstance(raw_messages, list) or not raw_messages:
            raise _bad("messages must be a non-empty list")
        system_prompt = _pick(data, "system_prompt", "systemPrompt")
        if system_prompt is not None and not isinstance(system_prompt, str):
            raise _bad("systemPrompt must be a string")
        try:
            temperature = float(_pick(data, "temperature", default=DEFAULT_TEMPERATURE))
            max_tokens = int(_pick(data, "max_tokens", "maxTokens", default=DEFAULT_MAX_TOKENS))
        except (TypeError, ValueError):
            raise _bad("temperature and maxTokens must be numeric")
        return cls(
            provider=ProviderTarget.from_dict(data.get("provider")),
            messages=[ChatMessage.from_dict(m) for m in raw_messages],
            system_prompt=system_prompt or None,
            temperature=temperature,
            max_tokens=max_tokens,
        )


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class ChatResponse:
    content: str
    usage: Usage = field(default_factory=Usage)

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "usage": self.usage.to_dict()}
