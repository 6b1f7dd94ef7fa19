"""Docket configuration: config.yaml overlay, env settings, logging, CLI args."""

from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml


_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_CACHE_DIR = Path.home() / ".docket" / "cache"


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------
@dataclass
class Config:
    """Runtime configuration for the Docket process."""

    app_version: str = "1.0.0"  # Compared against documents' minAppVersion.
    cache_dir: Path = field(default_factory=lambda: _DEFAULT_CACHE_DIR)  # FileCache directory.
    bundled_dir: Path = field(default_factory=lambda: _PROJECT_ROOT / "config")  # Shipped YAML.
    allow_loopback: bool = False  # Permit localhost/private endpoints (local model servers).
    timeout_s: float = 60.0  # Per-request timeout for provider calls.
    refresh_timeout_s: float = 15.0  # Timeout for remote config fetches.
    bind_host: str = "127.0.0.1"  # Flask shim bind address.
    bind_port: int = 8890  # Flask shim port.


def _env_bool(name: str, default: bool) -> bool:
    """Read a permissive boolean env var with a default fallback."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# config.yaml loader
# ---------------------------------------------------------------------------
_CONFIG_YAML_STATUS = ""  # human-readable load status for the startup banner


def _load_config_yaml(project_root: Path | None = None) -> Dict[str, Any]:
    """Load config.yaml from the project directory.

    *project_root* defaults to the parent of the bin/ directory (i.e. the
    repo root). A missing or broken file yields {}.
    """
    global _CONFIG_YAML_STATUS
    if project_root is None:
        project_root = _PROJECT_ROOT
    cfg_path = project_root / "config.yaml"
    if not cfg_path.exists():
        _CONFIG_YAML_STATUS = f"not found at {cfg_path}"
        return {}
    try:
        with open(cfg_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        _CONFIG_YAML_STATUS = f"parse error: {exc}"
        return {}
    if not isinstance(data, dict):
        _CONFIG_YAML_STATUS = f"ignored (not a mapping) at {cfg_path}"
        return {}
    _CONFIG_YAML_STATUS = f"loaded ({len(data)} keys) from {cfg_path}" if data else f"empty at {cfg_path}"
    return data


def load_config(project_root: Path | None = None) -> Config:
    """Build Config from defaults, then config.yaml, then DOCKET_* env vars."""
    defaults = Config()
    overlay = _load_config_yaml(project_root)

    def pick(env_name: str, yaml_key: str, default: Any) -> Any:
        if env_name in os.environ:
            return os.environ[env_name]
        return overlay.get(yaml_key, default)

    allow_loopback = overlay.get("allow_loopback", defaults.allow_loopback)
    return Config(
        app_version=str(pick("DOCKET_APP_VERSION", "app_version", defaults.app_version)),
        cache_dir=Path(str(pick("DOCKET_CACHE_DIR", "cache_dir", defaults.cache_dir))).expanduser(),
        bundled_dir=Path(str(pick("DOCKET_BUNDLED_DIR", "bundled_dir", defaults.bundled_dir))).expanduser(),
        allow_loopback=_env_bool("DOCKET_ALLOW_LOOPBACK", bool(allow_loopback)),
        timeout_s=float(pick("DOCKET_TIMEOUT_S", "timeout_s", defaults.timeout_s)),
        refresh_timeout_s=float(pick("DOCKET_REFRESH_TIMEOUT_S", "refresh_timeout_s", defaults.refresh_timeout_s)),
        bind_host=str(pick("DOCKET_BIND_HOST", "bind_host", defaults.bind_host)),
        bind_port=int(pick("DOCKET_BIND_PORT", "bind_port", defaults.bind_port)),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
_SECRET_PATTERNS = [
    (re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]+"), r"\1[REDACTED]"),
    (re.compile(r"(?i)([?&]key=)[^&\s'\"]+"), r"\1[REDACTED]"),
    (re.compile(r"(?i)((?:api[_-]?key|apikey|token|password|secret)['\"]?\s*[:=]\s*['\"]?)[^'\"\s,}&]+"),
     r"\1[REDACTED]"),
]


def redact(text: str) -> str:
    """Mask credential-looking values in a log line."""
    for pattern, repl in _SECRET_PATTERNS:
        text = pattern.sub(repl, text)
    return text


class RedactingFilter(logging.Filter):
    """Rewrites each record's rendered message with secrets masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = ()
        return True


def configure_logging(debug: bool = False) -> None:
    """Install a single stderr handler with credential redaction."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    handler.addFilter(RedactingFilter())
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    # urllib3 logs full request lines (including query strings) at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Module-level mode flags (set by main() at startup)
# ---------------------------------------------------------------------------
DEBUG_MODE: bool = False


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------
def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for serve/validate execution modes."""
    parser = argparse.ArgumentParser(description="Docket configuration and chat core")
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging")
    sub = parser.add_subparsers(dest="cmd")
    sub.add_parser("serve", help="Run Flask shim server (default)")
    validate_parser = sub.add_parser("validate", help="Validate configuration documents")
    validate_parser.add_argument(
        "files", nargs="*",
        help="YAML files to check (default: the bundled documents)",
    )
    validate_parser.add_argument(
        "--domain", choices=["provider", "practice", "advisory"],
        help="Domain of the given files (default: inferred from the file name)",
    )
    return parser.parse_args(argv)
