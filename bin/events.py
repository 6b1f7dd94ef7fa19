"""Docket update notification: process-wide `config-updated` signal.

Receivers connect with `config_updated.connect(fn)` and are called as
`fn(domain_name, version=...)` after a refresh writes a newer document to
the cache. The payload shown to the user changes only on the next
load_config() call; the signal just tells the UI a reload is worthwhile.
"""

from __future__ import annotations

import logging

from blinker import Namespace

logger = logging.getLogger(__name__)

_signals = Namespace()

config_updated = _signals.signal("config-updated")


def notify_config_updated(domain: str, version: str) -> None:
    """Broadcast that `domain` now has `version` in the cache."""
    receivers = config_updated.send(domain, version=version)
    logger.info("config-updated: %s -> %s (%d receiver(s))", domain, version, len(receivers))
