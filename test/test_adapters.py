#!/usr/bin/env python3
"""Tests for provider wire-protocol adapters (network is mocked).

Each family is checked for the request it builds (URL, headers, body)
and for how it normalizes responses and failures.
"""

import json
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

_project = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_project / "bin"))

from adapters import ADAPTERS, send_request
from errors import (
    API_ERROR,
    EMPTY_RESPONSE,
    INVALID_ENDPOINT,
    INVALID_RESPONSE,
    MISSING_ENDPOINT,
    REQUEST_TIMEOUT,
    ApiError,
)
from models import ChatMessage, ChatRequest, ProviderTarget
from transport import HttpResult


def _request(provider="openai", model="gpt-4o", endpoint=None, system_prompt=None,
             supports_temperature=True, messages=None):
    return ChatRequest(
        provider=ProviderTarget(provider=provider, model=model, api_key="sk-test",
                                endpoint=endpoint, supports_temperature=supports_temperature),
        messages=messages or [
            ChatMessage("user", "Is a verbal contract binding?"),
            ChatMessage("assistant", "Often, yes."),
            ChatMessage("user", "What about real estate?"),
        ],
        system_prompt=system_prompt,
    )


def _reply(payload, status=200):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return HttpResult(status, text, {}, "https://redacted")


def _openai_ok(content="Not for land.", usage=None):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": usage or {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17},
    }


class _AdapterBase(unittest.TestCase):
    def send(self, request, reply, **kwargs):
        """Run send_request with post_json mocked; returns (response, call)."""
        with patch("adapters.post_json", return_value=reply) as post:
            result = send_request(ADAPTERS[request.provider.provider], request, **kwargs)
        return result, post.call_args

    def send_error(self, request, reply=None, side_effect=None):
        with patch("adapters.post_json", return_value=reply, side_effect=side_effect):
            with self.assertRaises(ApiError) as ctx:
                send_request(ADAPTERS[request.provider.provider], request)
        return ctx.exception


# ---------------------------------------------------------------------------
# OpenAI-compatible family
# ---------------------------------------------------------------------------
class TestOpenAIFamily(_AdapterBase):
    def test_openai_request_shape(self):
        result, call = self.send(_request(system_prompt="Be precise."), _reply(_openai_ok()))
        url, body = call[0]
        headers = call[1]["headers"]
        self.assertEqual(url, "https://api.openai.com/v1/chat/completions")
        self.assertEqual(headers["Authorization"], "Bearer sk-test")
        self.assertEqual(body["model"], "gpt-4o")
        self.assertEqual(body["max_completion_tokens"], 4000)
        self.assertNotIn("max_tokens", body)
        self.assertEqual(body["temperature"], 0.7)
        self.assertEqual(body["messages"][0], {"role": "system", "content": "Be precise."})
        self.assertEqual(len(body["messages"]), 4)
        self.assertEqual(result.content, "Not for land.")
        self.assertEqual(result.usage.prompt_tokens, 12)
        self.assertEqual(result.usage.completion_tokens, 5)
        self.assertEqual(result.usage.total_tokens, 17)

    def test_bearer_providers_use_max_tokens(self):
        for provider in ("xai", "mistral", "groq", "perplexity", "cerebras"):
            _, call = self.send(_request(provider=provider, model="m"), _reply(_openai_ok()))
            body = call[0][1]
            self.assertEqual(body["max_tokens"], 4000, provider)
            self.assertNotIn("max_completion_tokens", body, provider)
            self.assertTrue(call[0][0].startswith("https://"), provider)

    def test_temperature_omitted_when_unsupported(self):
        _, call = self.send(_request(supports_temperature=False), _reply(_openai_ok()))
        self.assertNotIn("temperature", call[0][1])

    def test_caller_endpoint_overrides_default(self):
        _, call = self.send(_request(endpoint="https://proxy.example.com/v1/chat"), _reply(_openai_ok()))
        self.assertEqual(call[0][0], "https://proxy.example.com/v1/chat")

    def test_empty_choices_is_empty_response(self):
        err = self.send_error(_request(), _reply({"choices": []}))
        self.assertEqual(err.code, EMPTY_RESPONSE)

    def test_missing_choices_is_invalid_response(self):
        err = self.send_error(_request(), _reply({"id": "x"}))
        self.assertEqual(err.code, INVALID_RESPONSE)

    def test_empty_content_is_empty_response(self):
        err = self.send_error(_request(), _reply(_openai_ok(content="")))
        self.assertEqual(err.code, EMPTY_RESPONSE)

    def test_non_text_content_is_invalid_response(self):
        err = self.send_error(_request(), _reply(_openai_ok(content=[{"type": "image"}])))
        self.assertEqual(err.code, INVALID_RESPONSE)

    def test_non_json_body_is_invalid_response(self):
        err = self.send_error(_request(), _reply("<html>oops</html>"))
        self.assertEqual(err.code, INVALID_RESPONSE)

    def test_missing_usage_defaults_to_zero(self):
        payload = _openai_ok()
        del payload["usage"]
        result, _ = self.send(_request(), _reply(payload))
        self.assertEqual((result.usage.prompt_tokens, result.usage.total_tokens), (0, 0))

    def test_http_error_uses_provider_message(self):
        err = self.send_error(_request(), _reply({"error": {"message": "Incorrect API key"}}, status=401))
        self.assertEqual(err.code, API_ERROR)
        self.assertEqual(err.message, "Incorrect API key")
        self.assertEqual(err.details, {"status": 401, "provider": "openai"})

    def test_http_error_with_top_level_message(self):
        err = self.send_error(_request(provider="mistral", model="m"), _reply({"message": "Rate limited"}, 429))
        self.assertEqual(err.message, "Rate limited")
        self.assertEqual(err.details["status"], 429)

    def test_http_error_without_json_body(self):
        err = self.send_error(_request(), _reply("Bad Gateway", status=502))
        self.assertEqual(err.code, API_ERROR)
        self.assertIn("502", err.message)

    def test_timeout_propagates(self):
        err = self.send_error(_request(), side_effect=ApiError(REQUEST_TIMEOUT, "Request timed out after 60000ms"))
        self.assertEqual(err.code, REQUEST_TIMEOUT)

    def test_internal_endpoint_rejected_before_io(self):
        with patch("adapters.post_json") as post:
            with self.assertRaises(ApiError) as ctx:
                send_request(ADAPTERS["openai"], _request(endpoint="http://127.0.0.1:8080/v1"))
        self.assertEqual(ctx.exception.code, INVALID_ENDPOINT)
        post.assert_not_called()

    def test_internal_endpoint_allowed_with_loopback_flag(self):
        _, call = self.send(_request(endpoint="http://localhost:11434/v1/chat/completions"),
                            _reply(_openai_ok()), allow_loopback=True)
        self.assertEqual(call[0][0], "http://localhost:11434/v1/chat/completions")

    def test_custom_timeout_is_forwarded(self):
        _, call = self.send(_request(), _reply(_openai_ok()), timeout_s=5)
        self.assertEqual(call[1]["timeout_s"], 5)


class TestAzureOpenAI(_AdapterBase):
    def test_requires_endpoint(self):
        with patch("adapters.post_json") as post:
            with self.assertRaises(ApiError) as ctx:
                send_request(ADAPTERS["azure-openai"], _request(provider="azure-openai"))
        self.assertEqual(ctx.exception.code, MISSING_ENDPOINT)
        post.assert_not_called()

    def test_api_key_header_and_no_model(self):
        endpoint = "https://acme.openai.azure.com/openai/deployments/gpt4o/chat/completions?api-version=2024-06-01"
        _, call = self.send(_request(provider="azure-openai", endpoint=endpoint), _reply(_openai_ok()))
        url, body = call[0]
        self.assertEqual(url, endpoint)
        self.assertEqual(call[1]["headers"], {"api-key": "sk-test"})
        self.assertNotIn("model", body)
        self.assertEqual(body["max_tokens"], 4000)


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------
class TestAnthropic(_AdapterBase):
    def _ok(self, blocks=None, usage=None):
        return {
            "content": blocks if blocks is not None else [{"type": "text", "text": "Statute of frauds applies."}],
            "usage": usage or {"input_tokens": 20, "output_tokens": 6},
        }

    def test_request_shape(self):
        req = _request(provider="anthropic", model="claude-sonnet-4-5", system_prompt="Cite statutes.",
                       messages=[ChatMessage("system", "Jurisdiction: NY"), ChatMessage("user", "Hi")])
        result, call = self.send(req, _reply(self._ok()))
        url, body = call[0]
        headers = call[1]["headers"]
        self.assertEqual(url, "https://api.anthropic.com/v1/messages")
        self.assertEqual(headers["x-api-key"], "sk-test")
        self.assertEqual(headers["anthropic-version"], "2023-06-01")
        self.assertNotIn("Authorization", headers)
        self.assertEqual(body["system"], "Cite statutes.\n\nJurisdiction: NY")
        self.assertEqual(body["messages"], [{"role": "user", "content": "Hi"}])
        self.assertEqual(body["max_tokens"], 4000)
        self.assertEqual(result.content, "Statute of frauds applies.")

    def test_roles_are_user_or_assistant(self):
        _, call = self.send(_request(provider="anthropic", model="c"), _reply(self._ok()))
        roles = {m["role"] for m in call[0][1]["messages"]}
        self.assertLessEqual(roles, {"user", "assistant"})

    def test_no_system_field_without_prompt(self):
        _, call = self.send(_request(provider="anthropic", model="c"), _reply(self._ok()))
        self.assertNotIn("system", call[0][1])

    def test_usage_sums_input_and_output(self):
        result, _ = self.send(_request(provider="anthropic", model="c"), _reply(self._ok()))
        self.assertEqual(result.usage.prompt_tokens, 20)
        self.assertEqual(result.usage.completion_tokens, 6)
        self.assertEqual(result.usage.total_tokens, 26)

    def test_multiple_text_blocks_are_joined(self):
        blocks = [{"type": "text", "text": "A"}, {"type": "tool_use", "id": "t"}, {"type": "text", "text": "B"}]
        result, _ = self.send(_request(provider="anthropic", model="c"), _reply(self._ok(blocks)))
        self.assertEqual(result.content, "AB")

    def test_empty_content_is_empty_response(self):
        err = self.send_error(_request(provider="anthropic", model="c"), _reply(self._ok(blocks=[])))
        self.assertEqual(err.code, EMPTY_RESPONSE)

    def test_non_text_blocks_are_invalid_response(self):
        err = self.send_error(_request(provider="anthropic", model="c"),
                              _reply(self._ok(blocks=[{"type": "image"}])))
        self.assertEqual(err.code, INVALID_RESPONSE)

    def test_error_body(self):
        body = {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
        err = self.send_error(_request(provider="anthropic", model="c"), _reply(body, status=529))
        self.assertEqual(err.message, "Overloaded")
        self.assertEqual(err.details, {"status": 529, "provider": "anthropic"})


# ---------------------------------------------------------------------------
# Google Gemini
# ---------------------------------------------------------------------------
class TestGoogle(_AdapterBase):
    def _ok(self, text="Yes, under UCC 2-201.", finish="STOP"):
        return {
            "candidates": [{"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": finish}],
            "usageMetadata": {"promptTokenCount": 9, "candidatesTokenCount": 4, "totalTokenCount": 13},
        }

    def test_request_shape(self):
        req = _request(provider="google", model="gemini-2.5-flash", system_prompt="Be brief.")
        result, call = self.send(req, _reply(self._ok()))
        url, body = call[0]
        self.assertEqual(
            url,
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent?key=sk-test",
        )
        self.assertNotIn("Authorization", call[1]["headers"])
        contents = body["contents"]
        self.assertEqual(contents[0], {"role": "user", "parts": [{"text": "Be brief."}]})
        self.assertEqual([c["role"] for c in contents[1:]], ["user", "model", "user"])
        self.assertEqual(body["generationConfig"], {"temperature": 0.7, "maxOutputTokens": 4000})
        self.assertEqual(result.content, "Yes, under UCC 2-201.")
        self.assertEqual(result.usage.total_tokens, 13)

    def test_custom_endpoint_keeps_query(self):
        req = _request(provider="google", model="g", endpoint="https://gw.example.com/gen?alt=json")
        _, call = self.send(req, _reply(self._ok()))
        self.assertEqual(call[0][0], "https://gw.example.com/gen?alt=json&key=sk-test")

    def test_temperature_omitted_when_unsupported(self):
        req = _request(provider="google", model="g", supports_temperature=False)
        _, call = self.send(req, _reply(self._ok()))
        self.assertEqual(call[0][1]["generationConfig"], {"maxOutputTokens": 4000})

    def test_no_candidates_is_empty_response(self):
        err = self.send_error(_request(provider="google", model="g"),
                              _reply({"promptFeedback": {"blockReason": "SAFETY"}}))
        self.assertEqual(err.code, EMPTY_RESPONSE)
        self.assertIn("SAFETY", err.message)

    def test_safety_blocked_candidate_is_empty_response(self):
        payload = {"candidates": [{"finishReason": "SAFETY", "safetyRatings": []}]}
        err = self.send_error(_request(provider="google", model="g"), _reply(payload))
        self.assertEqual(err.code, EMPTY_RESPONSE)

    def test_candidates_not_list_is_invalid(self):
        err = self.send_error(_request(provider="google", model="g"), _reply({"candidates": {"x": 1}}))
        self.assertEqual(err.code, INVALID_RESPONSE)

    def test_error_list_body(self):
        body = [{"error": {"code": 400, "message": "API key not valid"}}]
        err = self.send_error(_request(provider="google", model="g"), _reply(body, status=400))
        self.assertEqual(err.message, "API key not valid")


# ---------------------------------------------------------------------------
# Custom
# ---------------------------------------------------------------------------
class TestCustom(_AdapterBase):
    ENDPOINT = "https://llm.example.org/v1/chat/completions"

    def test_requires_endpoint(self):
        err = self.send_error(_request(provider="custom", model="m"))
        self.assertEqual(err.code, MISSING_ENDPOINT)

    def test_openai_shape_accepted(self):
        result, call = self.send(_request(provider="custom", model="m", endpoint=self.ENDPOINT),
                                 _reply(_openai_ok("hello")))
        self.assertEqual(result.content, "hello")
        self.assertEqual(call[1]["headers"]["Authorization"], "Bearer sk-test")

    def test_top_level_content_accepted(self):
        result, _ = self.send(_request(provider="custom", model="m", endpoint=self.ENDPOINT),
                              _reply({"content": "plain"}))
        self.assertEqual(result.content, "plain")
        self.assertEqual(result.usage.total_tokens, 0)

    def test_neither_shape_fails(self):
        err = self.send_error(_request(provider="custom", model="m", endpoint=self.ENDPOINT),
                              _reply({"choices": [], "content": ""}))
        self.assertEqual(err.code, EMPTY_RESPONSE)


if __name__ == "__main__":
    unittest.main()
