"""Docket config loader: bundled -> cached -> remote fallback chain.

One ConfigLoader per domain (provider catalog, practice areas, advisory
areas). load_config() never fails the caller:
  1. bundled document from config/<file>.yaml (emergency single-entry
     document if even that is unreadable or invalid)
  2. cached document (purged when it no longer validates)
  3. higher version wins; a tie keeps the bundled document
  4. a detached refresh is submitted to a thread pool; it may write a
     newer remote document to the cache and emit `config-updated`
  5. the selected payload is returned synchronously

The refresh never touches the document already returned; callers see a
newer payload on their next load_config() call.
"""

from __future__ import annotations

import concurrent.futures
import copy
import datetime as _dt
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from cache import ConfigCache
from endpoints import validate_endpoint
from errors import API_ERROR, ApiError, ConfigValidationError, VersionIncompatible
from events import notify_config_updated
from schema import ENTRY_PROVIDER, ENTRY_TAXONOMY, validate_document
from transport import get_text
from versions import compare_versions, is_compatible, is_newer

logger = logging.getLogger(__name__)

DEFAULT_BUNDLED_DIR = Path(__file__).resolve().parent.parent / "config"
DEFAULT_REFRESH_TIMEOUT_S = 15.0
REMOTE_HEADERS = {
    "Accept": "application/x-yaml, text/yaml, */*",
    "Cache-Control": "no-cache",
}


# ---------------------------------------------------------------------------
# Emergency documents (used only when the bundled file is unusable)
# ---------------------------------------------------------------------------
def _now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _emergency_practice() -> Dict[str, Any]:
    return {
        "version": "0.0.0",
        "minAppVersion": "0.0.0",
        "lastUpdated": _now_iso(),
        "practiceAreas": [{
            "id": "general",
            "name": "General Legal",
            "description": "General legal assistance and guidance",
            "color": "#6b7280",
            "keywords": ["legal", "law", "attorney", "lawyer", "counsel"],
            "systemPrompt": (
                "You are a helpful legal AI assistant providing general legal guidance. "
                "Always remind users to consult with licensed attorneys for specific legal advice."
            ),
        }],
    }


def _emergency_advisory() -> Dict[str, Any]:
    return {
        "version": "0.0.0",
        "minAppVersion": "0.0.0",
        "lastUpdated": _now_iso(),
        "advisoryAreas": [{
            "id": "general-advisory",
            "name": "General Business Advisory",
            "description": "General business consulting and advisory services",
            "color": "#1e40af",
            "keywords": ["business", "advisory", "consulting", "strategy", "management"],
            "systemPrompt": (
                "You are a business advisory AI assistant providing general consulting "
                "guidance across strategy, operations, finance, and management."
            ),
        }],
    }


def _emergency_providers() -> Dict[str, Any]:
    return {
        "version": "0.0.0",
        "minAppVersion": "0.0.0",
        "lastUpdated": _now_iso(),
        "providers": [{
            "id": "openai",
            "name": "OpenAI",
            "displayName": "OpenAI",
            "description": "OpenAI chat completions",
            "endpoint": "https://api.openai.com/v1/chat/completions",
            "defaultModel": "gpt-4o",
            "models": [{
                "id": "gpt-4o",
                "name": "GPT-4o",
                "description": "General-purpose model",
                "enabled": True,
            }],
            "capabilities": {"supportsMultimodal": False, "supportsRAG": False},
            "authentication": {
                "apiKeyFormat": "sk-...",
                "apiKeyLabel": "OpenAI API Key",
                "getApiKeyUrl": "https://platform.openai.com/api-keys",
            },
            "ui": {"icon": "openai", "order": 1},
        }],
    }


# ---------------------------------------------------------------------------
# Domain definitions
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ConfigDomain:
    """Static description of one configuration domain."""

    name: str  # Short name used for cache keys, routes and the signal sender.
    bundled_file: str  # File under the bundled config directory.
    payload_key: str  # Document key holding the ordered entry list.
    entry_kind: str  # schema.ENTRY_* rule set for entries.
    emergency: Callable[[], Dict[str, Any]]

    @property
    def cache_key(self) -> str:
        return f"{self.name}-config"

    @property
    def version_key(self) -> str:
        return f"{self.name}-config-version"

    def validate(self, document: Any):
        return validate_document(document, payload_key=self.payload_key, entry_kind=self.entry_kind)


PROVIDERS = ConfigDomain("provider", "providers.yaml", "providers", ENTRY_PROVIDER, _emergency_providers)
PRACTICE_AREAS = ConfigDomain("practice", "practices.yaml", "practiceAreas", ENTRY_TAXONOMY, _emergency_practice)
ADVISORY_AREAS = ConfigDomain("advisory", "advisory.yaml", "advisoryAreas", ENTRY_TAXONOMY, _emergency_advisory)

DOMAINS: Dict[str, ConfigDomain] = {d.name: d for d in (PROVIDERS, PRACTICE_AREAS, ADVISORY_AREAS)}


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
def _normalize(value: Any) -> Any:
    """Turn YAML timestamps into ISO strings so documents are JSON-safe."""
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    if isinstance(value, _dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=_dt.timezone.utc)
        return value.isoformat().replace("+00:00", "Z")
    if isinstance(value, _dt.date):
        return value.isoformat()
    return value


def parse_document(text: str) -> Any:
    """Parse YAML (or JSON) text into a plain, JSON-serializable structure."""
    return _normalize(yaml.safe_load(text))


def _is_customized(document: Optional[Dict[str, Any]]) -> bool:
    return bool(document) and document.get("customized") is True


def select_newer(bundled: Dict[str, Any], cached: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Pick the higher-versioned document; ties keep the bundled one."""
    if cached is None:
        return bundled
    return bundled if compare_versions(bundled.get("version"), cached.get("version")) >= 0 else cached


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------
class ConfigLoader:
    """Fallback-chain loader for a single configuration domain."""

    def __init__(
        self,
        domain: ConfigDomain,
        cache: ConfigCache,
        *,
        app_version: str,
        bundled_dir: Path | None = None,
        executor: concurrent.futures.Executor | None = None,
        allow_loopback: bool = False,
        refresh_timeout_s: float = DEFAULT_REFRESH_TIMEOUT_S,
    ) -> None:
        self.domain = domain
        self.cache = cache
        self.app_version = app_version
        self.bundled_dir = Path(bundled_dir) if bundled_dir else DEFAULT_BUNDLED_DIR
        self.allow_loopback = allow_loopback
        self.refresh_timeout_s = refresh_timeout_s
        self._executor = executor
        self.last_refresh: Optional[concurrent.futures.Future] = None
        self._refresh_lock = threading.Lock()

    @property
    def executor(self) -> concurrent.futures.Executor:
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"docket-{self.domain.name}-refresh"
            )
        return self._executor

    def _tag(self) -> str:
        return f"[{self.domain.name}]"

    # -- public API ---------------------------------------------------------
    def load_config(self) -> List[Dict[str, Any]]:
        """Return the best-available payload list and schedule a refresh."""
        return self.load_document()[self.domain.payload_key]

    def load_document(self) -> Dict[str, Any]:
        """Like load_config() but returns the whole selected document."""
        bundled = self._load_bundled()
        cached = self._load_cached()
        current = select_newer(bundled, cached)
        logger.info("%s using %s document version %s", self._tag(),
                    "bundled" if current is bundled else "cached", current.get("version"))
        self._schedule_refresh(current, cached)
        return copy.deepcopy(current)

    def force_update(self) -> bool:
        """Fetch the remote document now and cache it when acceptable.

        Skips the newer-version check but still refuses customized
        documents and incompatible minAppVersion. Never raises.
        """
        bundled = self._load_bundled()
        cached = self._load_cached()
        current = select_newer(bundled, cached)
        url = current.get("updateUrl")
        if not url:
            logger.info("%s force update: no updateUrl configured", self._tag())
            return False
        if _is_customized(current) or _is_customized(cached):
            logger.info("%s force update skipped: configuration is customized", self._tag())
            return False
        try:
            document = self._fetch_remote(url)
        except (ApiError, ConfigValidationError, VersionIncompatible, yaml.YAMLError) as exc:
            logger.warning("%s force update failed: %s", self._tag(), exc)
            return False
        return self._write_cache(document)

    def clear_cache(self) -> None:
        self.cache.remove(self.domain.cache_key)
        self.cache.remove(self.domain.version_key)
        logger.info("%s cache cleared", self._tag())

    def get_current_version(self) -> Optional[str]:
        return self.cache.get(self.domain.version_key)

    # -- sources ------------------------------------------------------------
    def _load_bundled(self) -> Dict[str, Any]:
        path = self.bundled_dir / self.domain.bundled_file
        try:
            document = parse_document(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            logger.error("%s bundled config unreadable (%s): %s", self._tag(), path, exc)
            return self.domain.emergency()
        result = self.domain.validate(document)
        if not result:
            logger.error("%s bundled config invalid: %s", self._tag(), result.summary())
            return self.domain.emergency()
        return document

    def _load_cached(self) -> Optional[Dict[str, Any]]:
        raw = self.cache.get(self.domain.cache_key)
        if not raw:
            return None
        try:
            document = json.loads(raw)
        except ValueError as exc:
            logger.warning("%s cached config is not valid JSON (%s); purging", self._tag(), exc)
            self.clear_cache()
            return None
        result = self.domain.validate(document)
        if not result:
            logger.warning("%s cached config failed validation (%s); purging",
                           self._tag(), result.summary())
            self.clear_cache()
            return None
        return document

    def _fetch_remote(self, url: str) -> Dict[str, Any]:
        """GET, parse, validate and compatibility-check a remote document."""
        validate_endpoint(url, allow_loopback=self.allow_loopback)
        resp = get_text(url, headers=REMOTE_HEADERS, timeout_s=self.refresh_timeout_s)
        if not resp.ok:
            raise ApiError(API_ERROR, f"HTTP {resp.status_code} fetching remote config",
                           {"status": resp.status_code, "url": resp.url})
        document = parse_document(resp.text)
        result = self.domain.validate(document)
        if not result:
            raise ConfigValidationError(f"remote config invalid: {result.summary()}", result.issues)
        if not is_compatible(self.app_version, document.get("minAppVersion")):
            raise VersionIncompatible(str(document.get("minAppVersion")), self.app_version)
        return document

    def _write_cache(self, document: Dict[str, Any]) -> bool:
        if _is_customized(self._load_cached()):
            logger.info("%s cached config is customized; not overwriting", self._tag())
            return False
        version = str(document.get("version"))
        try:
            self.cache.set(self.domain.cache_key, json.dumps(document, ensure_ascii=False))
            self.cache.set(self.domain.version_key, version)
        except OSError as exc:
            logger.error("%s could not cache remote config %s: %s", self._tag(), version, exc)
            return False
        logger.info("%s cached remote config version %s", self._tag(), version)
        notify_config_updated(self.domain.name, version)
        return True

    # -- background refresh -------------------------------------------------
    def _schedule_refresh(self, current: Dict[str, Any], cached: Optional[Dict[str, Any]]) -> None:
        url = current.get("updateUrl")
        if not url:
            logger.debug("%s no updateUrl; refresh skipped", self._tag())
            return
        if _is_customized(current) or _is_customized(cached):
            logger.info("%s configuration is customized; refresh skipped", self._tag())
            return
        with self._refresh_lock:
            if self.last_refresh is not None and not self.last_refresh.done():
                logger.debug("%s refresh already in flight", self._tag())
                return
            self.last_refresh = self.executor.submit(self._refresh, url, str(current.get("version")))

    def _refresh(self, url: str, current_version: str) -> bool:
        """Background task body; every failure is logged and dropped."""
        try:
            document = self._fetch_remote(url)
            if not is_newer(document.get("version"), current_version):
                logger.info("%s remote config %s is not newer than %s", self._tag(),
                            document.get("version"), current_version)
                return False
            return self._write_cache(document)
        except VersionIncompatible as exc:
            logger.warning("%s remote config skipped: %s", self._tag(), exc)
        except (ApiError, ConfigValidationError, yaml.YAMLError) as exc:
            logger.warning("%s remote update failed: %s", self._tag(), exc)
        except Exception as exc:
            logger.warning("%s remote update failed unexpectedly: %r", self._tag(), exc)
        return False
