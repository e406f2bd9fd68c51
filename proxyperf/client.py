"""httpx client construction shared by every network stage.

Clients never read proxy settings from the environment: a run without a
proxy descriptor connects directly, and a run with one goes through that
proxy only.  A transport may be injected, in which case it carries all
traffic (used by the tests with ``httpx.MockTransport``).
"""

from __future__ import annotations

from typing import Optional

import httpx

from proxyperf.config import USER_AGENT
from proxyperf.models import ProxyDescriptor

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Connection": "close",
}


def build_client(
    proxy: Optional[ProxyDescriptor] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Build a fresh client bound to *proxy*.

    ``timeout=None`` disables httpx timeouts entirely.
    """
    kwargs: dict = {
        "headers": DEFAULT_HEADERS,
        "timeout": httpx.Timeout(timeout),
        "trust_env": False,
        "follow_redirects": True,
    }
    if transport is not None:
        kwargs["transport"] = transport
    elif proxy is not None:
        kwargs["proxy"] = proxy.url
    return httpx.Client(**kwargs)
