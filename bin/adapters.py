"""Docket provider adapters: one strategy record per chat wire protocol.

Families:
  - Bearer JSON, OpenAI-compatible: openai, xai, mistral, groq, perplexity,
    cerebras, azure-openai (api-key header, deployment endpoint required)
  - anthropic: x-api-key + anthropic-version, top-level `system`
  - google: key in the query string, assistant -> "model", system prompt
    sent as a leading user turn, generationConfig for sampling
  - custom: caller-supplied OpenAI-style endpoint, lenient response shape

send_request() is the shared flow; each adapter only contributes the
protocol-specific pieces. Every failure surfaces as ApiError; no retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from endpoints import validate_endpoint
from errors import (
    API_ERROR,
    EMPTY_RESPONSE,
    INVALID_RESPONSE,
    MISSING_ENDPOINT,
    create_api_error,
)
from models import ChatMessage, ChatRequest, ChatResponse, ProviderTarget, Usage
from transport import DEFAULT_TIMEOUT_S, post_json

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
_GEMINI_BLOCKED = {"SAFETY", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII", "RECITATION"}


@dataclass(frozen=True)
class ProviderAdapter:
    """Protocol strategy; endpoint-less adapters require the caller's endpoint."""

    provider_id: str
    default_endpoint: Optional[str]
    transform_messages: Callable[[List[ChatMessage], Optional[str]], List[Dict[str, Any]]]
    build_headers: Callable[[ProviderTarget], Dict[str, str]]
    build_request_body: Callable[[ProviderTarget, List[Dict[str, Any]], ChatRequest], Dict[str, Any]]
    parse_response: Callable[[Any, str], ChatResponse]
    build_url: Optional[Callable[[str, ProviderTarget], str]] = None

    def resolve_endpoint(self, target: ProviderTarget) -> str:
        """Caller endpoint, else the default (`{model}` is substituted)."""
        endpoint = (target.endpoint or "").strip()
        if not endpoint and self.default_endpoint:
            endpoint = self.default_endpoint.replace("{model}", quote(target.model, safe=""))
        if not endpoint:
            raise create_api_error(
                MISSING_ENDPOINT,
                f"An endpoint is required for provider '{self.provider_id}'",
                {"provider": self.provider_id},
            )
        return endpoint


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------
def _invalid(provider: str, message: str):
    return create_api_error(INVALID_RESPONSE, message, {"provider": provider})


def _empty(provider: str, message: str):
    return create_api_error(EMPTY_RESPONSE, message, {"provider": provider})


def _count(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _require_object(data: Any, provider: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise _invalid(provider, "Response body is not a JSON object")
    return data


def _openai_usage(data: Dict[str, Any]) -> Usage:
    usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    prompt = _count(usage.get("prompt_tokens"))
    completion = _count(usage.get("completion_tokens"))
    total = _count(usage.get("total_tokens")) or prompt + completion
    return Usage(prompt, completion, total)


def _error_message(data: Any, status: int) -> str:
    """Pull a human message out of a provider error body."""
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str) and err["message"]:
            return err["message"]
        if isinstance(err, str) and err:
            return err
        if isinstance(data.get("message"), str) and data["message"]:
            return data["message"]
    elif isinstance(data, list) and data:
        # Gemini occasionally wraps the error object in a list.
        return _error_message(data[0], status)
    return f"API request failed with status {status}"


# ---------------------------------------------------------------------------
# OpenAI-compatible family
# ---------------------------------------------------------------------------
def _openai_messages(messages: List[ChatMessage], system_prompt: Optional[str]) -> List[Dict[str, Any]]:
    out = [m.to_dict() for m in messages]
    if system_prompt:
        out.insert(0, {"role": "system", "content": system_prompt})
    return out


def _bearer_headers(target: ProviderTarget) -> Dict[str, str]:
    return {"Authorization": f"Bearer {target.api_key}"}


def _openai_body(token_field: str, include_model: bool = True):
    def build(target: ProviderTarget, messages: List[Dict[str, Any]], request: ChatRequest) -> Dict[str, Any]:
        body: Dict[str, Any] = {"messages": messages, token_field: request.max_tokens}
        if include_model:
            body = {"model": target.model, **body}
        if target.supports_temperature:
            body["temperature"] = request.temperature
        return body
    return build


def _parse_openai(data: Any, provider: str) -> ChatResponse:
    data = _require_object(data, provider)
    choices = data.get("choices")
    if choices is None:
        raise _invalid(provider, "Response has no choices")
    if not isinstance(choices, list):
        raise _invalid(provider, "Response choices is not a list")
    if not choices:
        raise _empty(provider, "Provider returned no choices")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise _invalid(provider, "First choice has no message")
    content = message.get("content")
    if content is None or content == "":
        raise _empty(provider, "Provider returned an empty message")
    if not isinstance(content, str):
        raise _invalid(provider, "Message content is not text")
    return ChatResponse(content=content, usage=_openai_usage(data))


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------
def _anthropic_messages(messages: List[ChatMessage], system_prompt: Optional[str]) -> List[Dict[str, Any]]:
    # System-role turns travel in the top-level `system` field instead.
    return [
        {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
        for m in messages if m.role != "system"
    ]


def _anthropic_headers(target: ProviderTarget) -> Dict[str, str]:
    return {"x-api-key": target.api_key, "anthropic-version": ANTHROPIC_VERSION}


def _anthropic_body(target: ProviderTarget, messages: List[Dict[str, Any]], request: ChatRequest) -> Dict[str, Any]:
    system_parts = [request.system_prompt] if request.system_prompt else []
    system_parts += [m.content for m in request.messages if m.role == "system" and m.content]
    body: Dict[str, Any] = {
        "model": target.model,
        "max_tokens": request.max_tokens,
        "messages": messages,
    }
    if system_parts:
        body["system"] = "\n\n".join(system_parts)
    if target.supports_temperature:
        body["temperature"] = request.temperature
    return body


def _parse_anthropic(data: Any, provider: str) -> ChatResponse:
    data = _require_object(data, provider)
    blocks = data.get("content")
    if blocks is None:
        raise _invalid(provider, "Response has no content blocks")
    if not isinstance(blocks, list):
        raise _invalid(provider, "Response content is not a list")
    if not blocks:
        raise _empty(provider, "Provider returned no content blocks")
    texts = [b.get("text") for b in blocks if isinstance(b, dict) and b.get("type") == "text"]
    if not texts:
        raise _invalid(provider, "Response contains no text blocks")
    if not all(isinstance(t, str) for t in texts):
        raise _invalid(provider, "Text block content is not a string")
    content = "".join(texts)
    if not content:
        raise _empty(provider, "Provider returned an empty message")
    usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    prompt = _count(usage.get("input_tokens"))
    completion = _count(usage.get("output_tokens"))
    return ChatResponse(content=content, usage=Usage(prompt, completion, prompt + completion))


# ---------------------------------------------------------------------------
# Google Gemini
# ---------------------------------------------------------------------------
def _google_messages(messages: List[ChatMessage], system_prompt: Optional[str]) -> List[Dict[str, Any]]:
    contents = [
        {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
        for m in messages
    ]
    if system_prompt:
        contents.insert(0, {"role": "user", "parts": [{"text": system_prompt}]})
    return contents


def _google_headers(target: ProviderTarget) -> Dict[str, str]:
    return {}


def _google_body(target: ProviderTarget, messages: List[Dict[str, Any]], request: ChatRequest) -> Dict[str, Any]:
    generation: Dict[str, Any] = {"maxOutputTokens": request.max_tokens}
    if target.supports_temperature:
        generation["temperature"] = request.temperature
    return {"contents": messages, "generationConfig": generation}


def _google_url(endpoint: str, target: ProviderTarget) -> str:
    sep = "&" if "?" in endpoint else "?"
    return f"{endpoint}{sep}key={quote(target.api_key, safe='')}"


def _parse_google(data: Any, provider: str) -> ChatResponse:
    data = _require_object(data, provider)
    candidates = data.get("candidates")
    if candidates is None or candidates == []:
        feedback = data.get("promptFeedback") if isinstance(data.get("promptFeedback"), dict) else {}
        reason = feedback.get("blockReason")
        message = f"Prompt was blocked ({reason})" if reason else "Provider returned no candidates"
        raise _empty(provider, message)
    if not isinstance(candidates, list):
        raise _invalid(provider, "Response candidates is not a list")
    first = candidates[0]
    if not isinstance(first, dict):
        raise _invalid(provider, "First candidate is not an object")
    finish = first.get("finishReason")
    content = first.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts:
        if finish in _GEMINI_BLOCKED:
            raise _empty(provider, f"Response was blocked ({finish})")
        raise _empty(provider, "Candidate has no content")
    if not isinstance(parts, list):
        raise _invalid(provider, "Candidate parts is not a list")
    texts = [p.get("text") for p in parts if isinstance(p, dict) and "text" in p]
    if not texts:
        raise _invalid(provider, "Candidate contains no text parts")
    if not all(isinstance(t, str) for t in texts):
        raise _invalid(provider, "Candidate text is not a string")
    text = "".join(texts)
    if not text:
        raise _empty(provider, "Provider returned an empty message")
    meta = data.get("usageMetadata") if isinstance(data.get("usageMetadata"), dict) else {}
    prompt = _count(meta.get("promptTokenCount"))
    completion = _count(meta.get("candidatesTokenCount"))
    total = _count(meta.get("totalTokenCount")) or prompt + completion
    return ChatResponse(content=text, usage=Usage(prompt, completion, total))


# ---------------------------------------------------------------------------
# Azure OpenAI / custom
# ---------------------------------------------------------------------------
def _azure_headers(target: ProviderTarget) -> Dict[str, str]:
    return {"api-key": target.api_key}


def _parse_custom(data: Any, provider: str) -> ChatResponse:
    data = _require_object(data, provider)
    content = None
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            content = message["content"]
    if not content and isinstance(data.get("content"), str):
        content = data["content"]
    if not content:
        raise _empty(provider, "Custom endpoint returned no text")
    return ChatResponse(content=content, usage=_openai_usage(data))


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------
def _bearer_adapter(provider_id: str, endpoint: str, token_field: str = "max_tokens") -> ProviderAdapter:
    return ProviderAdapter(
        provider_id=provider_id,
        default_endpoint=endpoint,
        transform_messages=_openai_messages,
        build_headers=_bearer_headers,
        build_request_body=_openai_body(token_field),
        parse_response=_parse_openai,
    )


ADAPTERS: Dict[str, ProviderAdapter] = {
    "openai": _bearer_adapter("openai", "https://api.openai.com/v1/chat/completions",
                              token_field="max_completion_tokens"),
    "xai": _bearer_adapter("xai", "https://api.x.ai/v1/chat/completions"),
    "mistral": _bearer_adapter("mistral", "https://api.mistral.ai/v1/chat/completions"),
    "groq": _bearer_adapter("groq", "https://api.groq.com/openai/v1/chat/completions"),
    "perplexity": _bearer_adapter("perplexity", "https://api.perplexity.ai/chat/completions"),
    "cerebras": _bearer_adapter("cerebras", "https://api.cerebras.ai/v1/chat/completions"),
    "azure-openai": ProviderAdapter(
        provider_id="azure-openai",
        default_endpoint=None,
        transform_messages=_openai_messages,
        build_headers=_azure_headers,
        build_request_body=_openai_body("max_tokens", include_model=False),
        parse_response=_parse_openai,
    ),
    "anthropic": ProviderAdapter(
        provider_id="anthropic",
        default_endpoint="https://api.anthropic.com/v1/messages",
        transform_messages=_anthropic_messages,
        build_headers=_anthropic_headers,
        build_request_body=_anthropic_body,
        parse_response=_parse_anthropic,
    ),
    "google": ProviderAdapter(
        provider_id="google",
        default_endpoint=GOOGLE_BASE_URL + "/{model}:generateContent",
        transform_messages=_google_messages,
        build_headers=_google_headers,
        build_request_body=_google_body,
        parse_response=_parse_google,
        build_url=_google_url,
    ),
    "custom": ProviderAdapter(
        provider_id="custom",
        default_endpoint=None,
        transform_messages=_openai_messages,
        build_headers=_bearer_headers,
        build_request_body=_openai_body("max_tokens"),
        parse_response=_parse_custom,
    ),
}


# ---------------------------------------------------------------------------
# Shared request flow
# ---------------------------------------------------------------------------
def send_request(
    adapter: ProviderAdapter,
    request: ChatRequest,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    allow_loopback: bool = False,
) -> ChatResponse:
    """Validate, build, POST and parse one chat completion."""
    target = request.provider
    endpoint = adapter.resolve_endpoint(target)
    validate_endpoint(endpoint, allow_loopback=allow_loopback)

    messages = adapter.transform_messages(request.messages, request.system_prompt)
    headers = adapter.build_headers(target)
    body = adapter.build_request_body(target, messages, request)
    url = adapter.build_url(endpoint, target) if adapter.build_url else endpoint

    logger.debug("%s: sending %d message(s) to model %s", adapter.provider_id, len(messages), target.model)
    resp = post_json(url, body, headers=headers, timeout_s=timeout_s)

    if not resp.ok:
        try:
            data = resp.json()
        except ValueError:
            data = None
        message = _error_message(data, resp.status_code)
        logger.warning("%s: HTTP %s: %s", adapter.provider_id, resp.status_code, message)
        raise create_api_error(API_ERROR, message,
                               {"status": resp.status_code, "provider": adapter.provider_id})

    try:
        data = resp.json()
    except ValueError:
        raise _invalid(adapter.provider_id, "Response body is not valid JSON")
    return adapter.parse_response(data, adapter.provider_id)
