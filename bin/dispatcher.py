"""Docket chat dispatcher: route a ChatRequest to its provider adapter."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from adapters import ADAPTERS, ProviderAdapter, send_request
from catalog import ProviderTemplate, migrate_provider_target
from errors import UNSUPPORTED_PROVIDER, create_api_error
from models import ChatRequest, ChatResponse
from transport import DEFAULT_TIMEOUT_S

logger = logging.getLogger(__name__)


class ChatDispatcher:
    """Select an adapter by provider id and run the shared request flow.

    When templates are supplied, a target saved without an endpoint is
    migrated to the template endpoint before dispatch.
    """

    def __init__(
        self,
        templates: Optional[Iterable[ProviderTemplate]] = None,
        *,
        adapters: Optional[Dict[str, ProviderAdapter]] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        allow_loopback: bool = False,
    ) -> None:
        self.templates: List[ProviderTemplate] = list(templates or [])
        self.adapters = adapters if adapters is not None else ADAPTERS
        self.timeout_s = timeout_s
        self.allow_loopback = allow_loopback

    def adapter_for(self, provider_id: str) -> ProviderAdapter:
        adapter = self.adapters.get(provider_id)
        if adapter is None:
            raise create_api_error(
                UNSUPPORTED_PROVIDER,
                f"Unsupported provider: {provider_id}",
                {"provider": provider_id},
            )
        return adapter

    def send(
        self,
        request: ChatRequest,
        templates: Optional[Iterable[ProviderTemplate]] = None,
    ) -> ChatResponse:
        """Dispatch one request; templates, when given, replace the stored ones."""
        adapter = self.adapter_for(request.provider.provider)
        templates = self.templates if templates is None else list(templates)
        if templates:
            target = migrate_provider_target(request.provider, templates)
            if target is not request.provider:
                request = replace(request, provider=target)
        return send_request(adapter, request, timeout_s=self.timeout_s, allow_loopback=self.allow_loopback)
