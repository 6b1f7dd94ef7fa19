#!/usr/bin/env python3
"""Docket local shim: configuration documents and provider chat over HTTP.

Flask server that exposes the three configuration domains (provider
catalog, practice areas, advisory areas) through their fallback-chain
loaders, and forwards chat requests to the selected AI provider.

Usage:
    # Server mode (default)
    export DOCKET_CACHE_DIR="$HOME/.docket/cache"
    python bin/docket.py

    # Validate the bundled documents (or specific files)
    python bin/docket.py validate
    python bin/docket.py validate --domain practice my-practices.yaml

Then query http://127.0.0.1:8890/config/practice
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Dict, List

import yaml
from flask import Flask, request as flask_request, jsonify

# Ensure bin/ is on the path so sibling modules are importable
sys.path.insert(0, str(Path(__file__).resolve().parent))

import config as config_mod
from cache import ConfigCache, FileCache
from catalog import (
    ProviderTemplate,
    calculate_cost,
    find_model_pricing,
    format_cost,
    to_provider_templates,
)
from config import Config, configure_logging, load_config, parse_args
from dispatcher import ChatDispatcher
from errors import (
    INVALID_ENDPOINT,
    INVALID_REQUEST,
    MISSING_ENDPOINT,
    REQUEST_TIMEOUT,
    UNSUPPORTED_PROVIDER,
    ApiError,
)
from loader import DOMAINS, PROVIDERS, ConfigDomain, ConfigLoader, parse_document
from models import ChatRequest

logger = logging.getLogger(__name__)

_CLIENT_ERRORS = {INVALID_ENDPOINT, UNSUPPORTED_PROVIDER, MISSING_ENDPOINT, INVALID_REQUEST}


def status_for(error: ApiError) -> int:
    """HTTP status used when an ApiError reaches the shim boundary."""
    if error.code in _CLIENT_ERRORS:
        return 400
    if error.code == REQUEST_TIMEOUT:
        return 504
    return 502


def build_loaders(cfg: Config, cache: ConfigCache) -> Dict[str, ConfigLoader]:
    """One loader per domain, sharing the cache and runtime settings."""
    return {
        name: ConfigLoader(
            domain,
            cache,
            app_version=cfg.app_version,
            bundled_dir=cfg.bundled_dir,
            allow_loopback=cfg.allow_loopback,
            refresh_timeout_s=cfg.refresh_timeout_s,
        )
        for name, domain in DOMAINS.items()
    }


# ---------------------------------------------------------------------------
# Flask app factory
# ---------------------------------------------------------------------------
def create_app(cfg: Config, cache: ConfigCache | None = None, url_prefix: str = "") -> Flask:
    """Create and configure the Docket Flask application instance."""
    app = Flask(__name__, static_folder=None)
    if cache is None:
        cache = FileCache(cfg.cache_dir)
    loaders = build_loaders(cfg, cache)
    dispatcher = ChatDispatcher(timeout_s=cfg.timeout_s, allow_loopback=cfg.allow_loopback)
    app.extensions["docket"] = {"loaders": loaders, "dispatcher": dispatcher}

    def current_templates() -> List[ProviderTemplate]:
        # re-read per request so an adopted catalog refresh takes effect
        return to_provider_templates(loaders[PROVIDERS.name].load_config())

    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        logger.warning("[Docket] %s: %s", exc.code, exc.message)
        return jsonify({"ok": False, "error": exc.to_dict()}), status_for(exc)

    @app.route(url_prefix + "/health", methods=["GET"])
    def health():
        """Simple liveness endpoint for local health checks."""
        return jsonify({"ok": True, "app_version": cfg.app_version})

    @app.route(url_prefix + "/config/<domain>", methods=["GET"])
    def get_config(domain: str):
        """Best-available document for a domain (schedules a refresh)."""
        loader = loaders.get(domain)
        if loader is None:
            return jsonify({"ok": False, "error": {"code": "UNKNOWN_DOMAIN", "message": domain}}), 404
        document = loader.load_document()
        return jsonify({
            "ok": True,
            "domain": domain,
            "version": document.get("version"),
            "customized": document.get("customized", False),
            "items": document[loader.domain.payload_key],
        })

    @app.route(url_prefix + "/config/<domain>/refresh", methods=["POST"])
    def refresh_config(domain: str):
        """Synchronous "check for updates"."""
        loader = loaders.get(domain)
        if loader is None:
            return jsonify({"ok": False, "error": {"code": "UNKNOWN_DOMAIN", "message": domain}}), 404
        updated = loader.force_update()
        return jsonify({"ok": True, "updated": updated, "version": loader.get_current_version()})

    @app.route(url_prefix + "/providers", methods=["GET"])
    def providers():
        """Provider templates (enabled, non-deprecated models only)."""
        return jsonify({"ok": True, "providers": [t.to_dict() for t in current_templates()]})

    @app.route(url_prefix + "/chat", methods=["POST"])
    def chat():
        """Send one chat completion through the provider adapters."""
        body = flask_request.get_json(force=True, silent=True)
        request = ChatRequest.from_dict(body)
        templates = current_templates()
        result = dispatcher.send(request, templates)
        payload = {"ok": True, **result.to_dict()}
        pricing = find_model_pricing(templates, request.provider.provider, request.provider.model)
        if pricing is not None:
            cost = calculate_cost(result.usage, *pricing)
            payload["cost"] = {**cost.to_dict(), "formatted": format_cost(cost.total_cost)}
        return jsonify(payload)

    return app


# ---------------------------------------------------------------------------
# validate subcommand
# ---------------------------------------------------------------------------
def _infer_domain(path: Path) -> ConfigDomain | None:
    stem = path.stem.lower()
    if "provider" in stem:
        return DOMAINS["provider"]
    if "advis" in stem:
        return DOMAINS["advisory"]
    if "practice" in stem:
        return DOMAINS["practice"]
    return None


def run_validate(cfg: Config, files: List[str], domain_name: str | None = None) -> int:
    """Validate documents and print their issues; returns a process exit code."""
    if files:
        targets = []
        for f in files:
            path = Path(f).expanduser()
            domain = DOMAINS[domain_name] if domain_name else _infer_domain(path)
            targets.append((path, domain))
    else:
        targets = [(cfg.bundled_dir / d.bundled_file, d) for d in DOMAINS.values()]

    failures = 0
    for path, domain in targets:
        if domain is None:
            print(f"  ? {path}: cannot infer domain (use --domain)")
            failures += 1
            continue
        try:
            document = parse_document(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            print(f"  ✗ {path}: {exc}")
            failures += 1
            continue
        result = domain.validate(document)
        if result:
            count = len(document.get(domain.payload_key, []))
            print(f"  ✓ {path}: {domain.name} v{document.get('version')} ({count} entries)")
        else:
            failures += 1
            print(f"  ✗ {path}: {len(result.issues)} issue(s)")
            for where, message in result.issues:
                print(f"      {where}: {message}")
    return 1 if failures else 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main(argv: List[str] | None = None) -> int:
    """Entrypoint for server startup and one-shot document validation."""
    args = parse_args(argv)
    config_mod.DEBUG_MODE = args.debug
    configure_logging(args.debug)
    cfg = load_config()

    if args.cmd == "validate":
        return run_validate(cfg, args.files, args.domain)

    # Default: serve
    print(f"\n{'='*60}")
    print(f"  Docket Local Shim")
    print(f"{'='*60}")
    print(f"  App version : {cfg.app_version}")
    print(f"  Bundled dir : {cfg.bundled_dir}")
    print(f"  Cache dir   : {cfg.cache_dir}")
    print(f"  Bind        : {cfg.bind_host}:{cfg.bind_port}")
    print(f"  Loopback    : {'allowed' if cfg.allow_loopback else 'blocked'}")
    print(f"  Config YAML : {config_mod._CONFIG_YAML_STATUS}")
    print(f"  Debug       : {'ON' if config_mod.DEBUG_MODE else 'off'}")
    print(f"{'='*60}\n")

    app = create_app(cfg)
    app.run(host=cfg.bind_host, port=cfg.bind_port, debug=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
