"""Docket provider catalog: template view, endpoint migration, cost math.

The provider configuration document is the source of truth for which
providers and models the UI offers. This module turns its payload into
ProviderTemplate views and offers two small services built on them:
  - migrate_provider_target(): fill a missing endpoint from the template
  - calculate_cost() / format_cost(): USD cost from token usage
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models import ProviderTarget, Usage

logger = logging.getLogger(__name__)

TOKENS_PER_PRICE_UNIT = 1_000_000  # prices are quoted per 1M tokens


@dataclass
class ModelInfo:
    id: str
    name: str
    description: str = ""
    max_context_window: Optional[int] = None
    default_max_tokens: Optional[int] = None
    max_max_tokens: Optional[int] = None
    input_token_price: Optional[float] = None
    output_token_price: Optional[float] = None


@dataclass
class ProviderTemplate:
    id: str
    name: str
    display_name: str
    description: str
    endpoint: str
    default_model: str
    models: List[ModelInfo] = field(default_factory=list)
    supports_multimodal: bool = False
    supports_rag: bool = False
    supports_temperature: bool = True
    api_key_format: str = ""
    api_key_label: str = ""
    get_api_key_url: str = ""
    icon: str = ""
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "displayName": self.display_name,
            "description": self.description,
            "endpoint": self.endpoint,
            "defaultModel": self.default_model,
            "models": [
                {
                    "id": m.id,
                    "name": m.name,
                    "description": m.description,
                    "maxContextWindow": m.max_context_window,
                    "defaultMaxTokens": m.default_max_tokens,
                    "maxMaxTokens": m.max_max_tokens,
                    "inputTokenPrice": m.input_token_price,
                    "outputTokenPrice": m.output_token_price,
                }
                for m in self.models
            ],
            "supportsMultimodal": self.supports_multimodal,
            "supportsRAG": self.supports_rag,
            "supportsTemperature": self.supports_temperature,
            "apiKeyFormat": self.api_key_format,
            "apiKeyLabel": self.api_key_label,
            "getApiKeyUrl": self.get_api_key_url,
            "icon": self.icon,
        }


# ---------------------------------------------------------------------------
# Template view
# ---------------------------------------------------------------------------
def _model_from_entry(entry: Dict[str, Any]) -> ModelInfo:
    return ModelInfo(
        id=entry["id"],
        name=entry.get("name", entry["id"]),
        description=entry.get("description", ""),
        max_context_window=entry.get("maxContextWindow"),
        default_max_tokens=entry.get("defaultMaxTokens"),
        max_max_tokens=entry.get("maxMaxTokens"),
        input_token_price=entry.get("inputTokenPrice"),
        output_token_price=entry.get("outputTokenPrice"),
    )


def to_provider_templates(providers: Iterable[Dict[str, Any]]) -> List[ProviderTemplate]:
    """Build templates from a provider payload; drops disabled/deprecated models."""
    templates = []
    for raw in providers:
        caps = raw.get("capabilities") or {}
        auth = raw.get("authentication") or {}
        ui = raw.get("ui") or {}
        models = [
            _model_from_entry(m) for m in raw.get("models", [])
            if m.get("enabled", True) and not m.get("deprecated", False)
        ]
        supports_temperature = caps.get("supportsTemperature")
        templates.append(ProviderTemplate(
            id=raw["id"],
            name=raw["name"],
            display_name=raw.get("displayName", raw["name"]),
            description=raw.get("description", ""),
            endpoint=raw.get("endpoint", ""),
            default_model=raw.get("defaultModel", ""),
            models=models,
            supports_multimodal=bool(caps.get("supportsMultimodal", False)),
            supports_rag=bool(caps.get("supportsRAG", False)),
            supports_temperature=True if supports_temperature is None else bool(supports_temperature),
            api_key_format=auth.get("apiKeyFormat", ""),
            api_key_label=auth.get("apiKeyLabel", ""),
            get_api_key_url=auth.get("getApiKeyUrl", ""),
            icon=ui.get("icon", ""),
            order=int(ui.get("order", 0) or 0),
        ))
    return templates


def load_provider_templates(loader) -> List[ProviderTemplate]:
    """Load the provider domain through a ConfigLoader and build templates."""
    return to_provider_templates(loader.load_config())


def find_template(templates: Iterable[ProviderTemplate], provider_id: str) -> Optional[ProviderTemplate]:
    for template in templates:
        if template.id == provider_id:
            return template
    return None


# ---------------------------------------------------------------------------
# Endpoint migration
# ---------------------------------------------------------------------------
def migrate_provider_target(target: ProviderTarget, templates: Iterable[ProviderTemplate]) -> ProviderTarget:
    """Fill a missing endpoint from the matching template (older saved configs)."""
    template = find_template(templates, target.provider)
    if template is None:
        logger.warning("no template found for provider %s", target.provider)
        return target
    if not (target.endpoint or "").strip() and template.endpoint:
        logger.info("fixing missing endpoint for %s: %s", target.provider, template.endpoint)
        return target.with_endpoint(template.endpoint)
    return target


# ---------------------------------------------------------------------------
# Cost calculation
# ---------------------------------------------------------------------------
@dataclass
class CostBreakdown:
    input_cost: float
    output_cost: float
    total_cost: float
    input_token_price: float
    output_token_price: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "inputCost": self.input_cost,
            "outputCost": self.output_cost,
            "totalCost": self.total_cost,
            "inputTokenPrice": self.input_token_price,
            "outputTokenPrice": self.output_token_price,
        }


def calculate_cost(usage: Usage, input_price: float, output_price: float) -> CostBreakdown:
    """Cost of one call; prices are USD per 1M tokens."""
    input_cost = usage.prompt_tokens / TOKENS_PER_PRICE_UNIT * input_price
    output_cost = usage.completion_tokens / TOKENS_PER_PRICE_UNIT * output_price
    return CostBreakdown(input_cost, output_cost, input_cost + output_cost, input_price, output_price)


def format_cost(cost: float) -> str:
    """Render USD with more precision for tiny amounts."""
    if cost == 0:
        return "$0.00"
    if cost < 0.001:
        return f"${cost:.6f}"
    if cost < 0.01:
        return f"${cost:.4f}"
    return f"${cost:.2f}"


def find_model_pricing(
    templates: Iterable[ProviderTemplate], provider_id: str, model_id: str,
) -> Optional[Tuple[float, float]]:
    """(input, output) price per 1M tokens, or None when unpriced."""
    template = find_template(templates, provider_id)
    if template is None:
        return None
    for model in template.models:
        if model.id == model_id:
            if model.input_token_price is None or model.output_token_price is None:
                return None
            return (float(model.input_token_price), float(model.output_token_price))
    return None
