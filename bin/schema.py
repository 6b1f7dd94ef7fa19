"""Docket schema validator: structural checks for configuration documents.

A configuration document is a mapping with a small versioned envelope and
an ordered payload list under a domain-specific key:

    version: "1.2.0"            # dotted numeric triple
    minAppVersion: "0.9.0"      # dotted numeric triple
    lastUpdated: "2025-01-01T00:00:00Z"
    updateUrl: https://...      # optional
    customized: false           # optional
    practiceAreas: [...]        # payload (key depends on the domain)

validate_document() never raises. It returns a ValidationResult that is
truthy when the document is acceptable and carries (path, message) issues
otherwise; the caller decides what to do with invalid input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Tuple


ENTRY_TAXONOMY = "taxonomy"  # practice / advisory areas
ENTRY_PROVIDER = "provider"  # AI provider catalog

_VERSION_RE = re.compile(r"^\d+(\.\d+){0,2}$")
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

REQUIRED_TOP_LEVEL = ("version", "minAppVersion", "lastUpdated")


@dataclass
class ValidationResult:
    """Outcome of a validation pass; falsy when any issue was recorded."""

    issues: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def __bool__(self) -> bool:
        return self.ok

    def add(self, path: str, message: str) -> None:
        self.issues.append((path, message))

    def summary(self, limit: int = 5) -> str:
        """Short single-line rendering for log messages."""
        shown = [f"{p}: {m}" for p, m in self.issues[:limit]]
        more = len(self.issues) - limit
        if more > 0:
            shown.append(f"(+{more} more)")
        return "; ".join(shown)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------
def _is_nonempty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _require_str(result: ValidationResult, entry: Mapping, key: str, path: str) -> None:
    if key not in entry:
        result.add(f"{path}.{key}", "is required")
    elif not _is_nonempty_str(entry[key]):
        result.add(f"{path}.{key}", "must be a non-empty string")


def _check_version_field(result: ValidationResult, document: Mapping, key: str) -> None:
    value = document[key]
    if not isinstance(value, str) or not _VERSION_RE.match(value.strip()):
        result.add(key, f"must be a dotted numeric version, got {value!r}")


# ---------------------------------------------------------------------------
# Entry rules
# ---------------------------------------------------------------------------
def _validate_taxonomy_entry(result: ValidationResult, entry: Mapping, path: str) -> None:
    """Practice/advisory area: id, name, description, color, keywords, systemPrompt."""
    for key in ("id", "name", "description"):
        _require_str(result, entry, key, path)

    color = entry.get("color")
    if color is None:
        result.add(f"{path}.color", "is required")
    elif not isinstance(color, str) or not _COLOR_RE.match(color):
        result.add(f"{path}.color", f"must be '#' followed by 6 hex digits, got {color!r}")

    keywords = entry.get("keywords")
    if keywords is None:
        result.add(f"{path}.keywords", "is required")
    elif not isinstance(keywords, list):
        result.add(f"{path}.keywords", "must be a list")
    else:
        for i, kw in enumerate(keywords):
            if not isinstance(kw, str):
                result.add(f"{path}.keywords[{i}]", "must be a string")

    if "systemPrompt" in entry and not isinstance(entry["systemPrompt"], str):
        result.add(f"{path}.systemPrompt", "must be a string")


def _validate_provider_entry(result: ValidationResult, entry: Mapping, path: str) -> None:
    """Provider descriptor: identity, endpoint, model catalog, capabilities."""
    for key in ("id", "name", "displayName", "description", "defaultModel"):
        _require_str(result, entry, key, path)
    if "endpoint" not in entry:
        result.add(f"{path}.endpoint", "is required")
    elif not isinstance(entry["endpoint"], str):
        result.add(f"{path}.endpoint", "must be a string")

    models = entry.get("models")
    if not isinstance(models, list):
        result.add(f"{path}.models", "must be a list")
    else:
        seen = set()
        for i, model in enumerate(models):
            mpath = f"{path}.models[{i}]"
            if not isinstance(model, Mapping):
                result.add(mpath, "must be a mapping")
                continue
            _require_str(result, model, "id", mpath)
            _require_str(result, model, "name", mpath)
            model_id = model.get("id")
            if isinstance(model_id, str):
                if model_id in seen:
                    result.add(f"{mpath}.id", f"duplicate model id {model_id!r}")
                seen.add(model_id)

    capabilities = entry.get("capabilities")
    if not isinstance(capabilities, Mapping):
        result.add(f"{path}.capabilities", "must be a mapping")
    else:
        for flag in ("supportsMultimodal", "supportsRAG"):
            if flag in capabilities and not isinstance(capabilities[flag], bool):
                result.add(f"{path}.capabilities.{flag}", "must be a boolean")

    auth = entry.get("authentication")
    if auth is not None and not isinstance(auth, Mapping):
        result.add(f"{path}.authentication", "must be a mapping")


_ENTRY_RULES = {
    ENTRY_TAXONOMY: _validate_taxonomy_entry,
    ENTRY_PROVIDER: _validate_provider_entry,
}


# ---------------------------------------------------------------------------
# Document validation
# ---------------------------------------------------------------------------
def validate_document(document: Any, *, payload_key: str, entry_kind: str) -> ValidationResult:
    """Validate a parsed configuration document for one domain."""
    result = ValidationResult()
    if not isinstance(document, Mapping):
        result.add("$", "document must be a mapping")
        return result

    for key in REQUIRED_TOP_LEVEL:
        if key not in document or document[key] in (None, ""):
            result.add(key, "is required")
    for key in ("version", "minAppVersion"):
        if document.get(key) not in (None, ""):
            _check_version_field(result, document, key)
    last_updated = document.get("lastUpdated")
    if last_updated not in (None, "") and not isinstance(last_updated, str):
        result.add("lastUpdated", "must be a timestamp string")

    if "updateUrl" in document and document["updateUrl"] is not None:
        if not isinstance(document["updateUrl"], str):
            result.add("updateUrl", "must be a string")
    if "customized" in document and not isinstance(document["customized"], bool):
        result.add("customized", "must be a boolean")

    entries = document.get(payload_key)
    if not isinstance(entries, list):
        result.add(payload_key, "must be a list")
        return result

    rule = _ENTRY_RULES.get(entry_kind)
    if rule is None:
        result.add("$", f"unknown entry kind {entry_kind!r}")
        return result

    seen_ids = set()
    for i, entry in enumerate(entries):
        path = f"{payload_key}[{i}]"
        if not isinstance(entry, Mapping):
            result.add(path, "must be a mapping")
            continue
        rule(result, entry, path)
        entry_id = entry.get("id")
        if isinstance(entry_id, str) and entry_id:
            if entry_id in seen_ids:
                result.add(f"{path}.id", f"duplicate id {entry_id!r}")
            seen_ids.add(entry_id)
    return result
