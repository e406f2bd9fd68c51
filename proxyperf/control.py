"""Proxy control-plane client.

The control plane is the local REST controller of a Clash-compatible
proxy core.  proxyperf only needs to read and switch the routing mode and
to switch the active member of a selector group.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from proxyperf.config import DEFAULT_CONTROLLER, DEFAULT_TIMEOUT, USER_AGENT
from proxyperf.errors import ProxySelectionError
from proxyperf.models import ProxyMode

logger = logging.getLogger(__name__)


class ProxyController(abc.ABC):
    """Operations proxyperf consumes from the control plane."""

    @abc.abstractmethod
    def get_mode(self) -> ProxyMode:
        """Current routing mode."""

    @abc.abstractmethod
    def set_mode(self, mode_name: str) -> None:
        """Switch the routing mode (``global``, ``rule`` or ``direct``)."""

    @abc.abstractmethod
    def get_selectors(self) -> list[str]:
        """Names of every selector group."""

    @abc.abstractmethod
    def get_selector_members(self, selector_name: str) -> list[str]:
        """Members of *selector_name*, in the controller's order."""

    @abc.abstractmethod
    def select_member(self, selector_name: str, member_name: str) -> None:
        """Make *member_name* the active member of *selector_name*."""


def parse_mode(value: Any) -> ProxyMode:
    if not isinstance(value, str):
        raise ProxySelectionError(f"Mode is not a string: {value!r}")
    try:
        return ProxyMode(value.lower())
    except ValueError:
        raise ProxySelectionError(f"Unknown proxy mode: {value!r}") from None


class ClashController(ProxyController):
    """REST client for the Clash external controller.

    Requests always bypass system proxy settings: the controller is local
    and must stay reachable while the proxy itself is being switched.
    """

    def __init__(
        self,
        server: str = DEFAULT_CONTROLLER,
        secret: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = server if "://" in server else f"http://{server}"
        self._headers = {
            "User-Agent": USER_AGENT,
            "Content-Type": "application/json",
        }
        if secret:
            self._headers["Authorization"] = f"Bearer {secret}"
        self._timeout = timeout
        self._transport = transport

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> httpx.Response:
        kwargs: dict = {
            "base_url": self.base_url,
            "headers": self._headers,
            "timeout": self._timeout,
            "trust_env": False,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        try:
            with httpx.Client(**kwargs) as client:
                response = client.request(method, path, json=json)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProxySelectionError(f"{method} {path} failed: {exc}") from exc
        return response

    def _json(self, path: str) -> Any:
        response = self._request("GET", path)
        try:
            return response.json()
        except ValueError as exc:
            raise ProxySelectionError(f"GET {path} returned invalid JSON: {exc}") from exc

    def get_mode(self) -> ProxyMode:
        data = self._json("/configs")
        if not isinstance(data, dict) or "mode" not in data:
            raise ProxySelectionError("Controller configuration has no mode")
        return parse_mode(data["mode"])

    def set_mode(self, mode_name: str) -> None:
        mode = parse_mode(mode_name)
        logger.info("Setting proxy mode to %s", mode.value)
        self._request("PATCH", "/configs", json={"mode": mode.value})

    def get_selectors(self) -> list[str]:
        data = self._json("/proxies")
        # Clash answers {"proxies": {name: {...}}}; some forks return a list.
        if isinstance(data, dict):
            items = list((data.get("proxies") or {}).values())
        elif isinstance(data, list):
            items = data
        else:
            raise ProxySelectionError("Unexpected /proxies payload")

        selectors = []
        for item in items:
            if not isinstance(item, dict) or "name" not in item:
                raise ProxySelectionError("Malformed proxy entry in /proxies")
            if item.get("type") == "Selector":
                selectors.append(item["name"])
        return selectors

    def get_selector_members(self, selector_name: str) -> list[str]:
        data = self._json(f"/proxies/{quote(selector_name, safe='')}")
        members = data.get("all") if isinstance(data, dict) else None
        if not isinstance(members, list):
            raise ProxySelectionError(f"{selector_name!r} is not a selector group")
        return [str(member) for member in members]

    def select_member(self, selector_name: str, member_name: str) -> None:
        logger.info("Selecting %s in %s", member_name, selector_name)
        self._request(
            "PUT",
            f"/proxies/{quote(selector_name, safe='')}",
            json={"name": member_name},
        )
