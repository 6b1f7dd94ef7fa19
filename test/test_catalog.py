#!/usr/bin/env python3
"""Tests for provider templates, endpoint migration and cost helpers."""

import sys
from pathlib import Path

_project = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_project / "bin"))

from catalog import (
    calculate_cost,
    find_model_pricing,
    format_cost,
    migrate_provider_target,
    to_provider_templates,
)
from models import ProviderTarget, Usage


def _providers():
    return [
        {
            "id": "openai",
            "name": "OpenAI",
            "displayName": "OpenAI (GPT)",
            "description": "GPT models",
            "endpoint": "https://api.openai.com/v1/chat/completions",
            "defaultModel": "gpt-4o",
            "models": [
                {"id": "gpt-4o", "name": "GPT-4o", "enabled": True,
                 "inputTokenPrice": 2.5, "outputTokenPrice": 10.0},
                {"id": "gpt-4", "name": "GPT-4", "enabled": True, "deprecated": True},
                {"id": "o1-preview", "name": "o1 preview", "enabled": False},
                {"id": "gpt-4o-mini", "name": "GPT-4o mini", "enabled": True},
            ],
            "capabilities": {"supportsMultimodal": True, "supportsRAG": True},
            "authentication": {"apiKeyFormat": "sk-...", "apiKeyLabel": "Key", "getApiKeyUrl": ""},
            "ui": {"icon": "openai", "order": 1},
        },
        {
            "id": "o-series",
            "name": "Reasoning",
            "displayName": "Reasoning",
            "description": "",
            "endpoint": "https://api.openai.com/v1/chat/completions",
            "defaultModel": "o3",
            "models": [{"id": "o3", "name": "o3", "enabled": True}],
            "capabilities": {"supportsMultimodal": False, "supportsRAG": False, "supportsTemperature": False},
        },
    ]


def test_templates_drop_disabled_and_deprecated_models():
    openai = to_provider_templates(_providers())[0]
    assert [m.id for m in openai.models] == ["gpt-4o", "gpt-4o-mini"]
    assert openai.display_name == "OpenAI (GPT)"
    assert openai.icon == "openai"


def test_supports_temperature_defaults_true():
    openai, reasoning = to_provider_templates(_providers())
    assert openai.supports_temperature is True
    assert reasoning.supports_temperature is False


def test_template_to_dict_uses_camel_case():
    data = to_provider_templates(_providers())[0].to_dict()
    assert data["defaultModel"] == "gpt-4o"
    assert data["supportsRAG"] is True
    assert data["models"][0]["inputTokenPrice"] == 2.5


def test_migrate_fills_missing_endpoint():
    templates = to_provider_templates(_providers())
    target = ProviderTarget(provider="openai", model="gpt-4o", api_key="k", endpoint=None)
    migrated = migrate_provider_target(target, templates)
    assert migrated.endpoint == "https://api.openai.com/v1/chat/completions"
    assert target.endpoint is None


def test_migrate_keeps_existing_endpoint_and_unknown_providers():
    templates = to_provider_templates(_providers())
    target = ProviderTarget(provider="openai", model="gpt-4o", endpoint="https://proxy.example.com")
    assert migrate_provider_target(target, templates) is target
    unknown = ProviderTarget(provider="nobody", model="x")
    assert migrate_provider_target(unknown, templates) is unknown


def test_calculate_cost_per_million_tokens():
    cost = calculate_cost(Usage(1_000_000, 500_000, 1_500_000), 2.5, 10.0)
    assert cost.input_cost == 2.5
    assert cost.output_cost == 5.0
    assert cost.total_cost == 7.5


def test_format_cost_precision_tiers():
    assert format_cost(0) == "$0.00"
    assert format_cost(0.0001234) == "$0.000123"
    assert format_cost(0.005) == "$0.0050"
    assert format_cost(1.234) == "$1.23"


def test_find_model_pricing():
    templates = to_provider_templates(_providers())
    assert find_model_pricing(templates, "openai", "gpt-4o") == (2.5, 10.0)
    assert find_model_pricing(templates, "openai", "gpt-4o-mini") is None
    assert find_model_pricing(templates, "openai", "gpt-4") is None
    assert find_model_pricing(templates, "missing", "gpt-4o") is None
