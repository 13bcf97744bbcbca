"""
Network probe — URL reachability.

Read-only HEAD requests against the endpoints an installer depends on
(source repositories, package indexes).
"""

from __future__ import annotations

import logging
import time
import urllib.request

from hostconverge.adapters.base import Adapter

logger = logging.getLogger(__name__)

_USER_AGENT = "hostconverge/0.1"


class NetworkProbe(Adapter):
    """HTTP reachability checks."""

    @property
    def name(self) -> str:
        return "network"

    def is_available(self) -> bool:
        return True

    def check_url(self, url: str, timeout: int = 10) -> dict:
        """Probe a URL with a HEAD request.

        Returns::

            {"reachable": True, "url": "https://...", "status": 200, "latency_ms": 42}
            or
            {"reachable": False, "url": "https://...", "error": "timeout", "latency_ms": 10000}
        """
        start = time.monotonic()
        try:
            req = urllib.request.Request(
                url,
                method="HEAD",
                headers={"User-Agent": _USER_AGENT},
            )
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return {
                    "reachable": True,
                    "url": url,
                    "status": resp.getcode(),
                    "latency_ms": int((time.monotonic() - start) * 1000),
                }
        except Exception as exc:
            return {
                "reachable": False,
                "url": url,
                "error": str(exc)[:200],
                "latency_ms": int((time.monotonic() - start) * 1000),
            }
