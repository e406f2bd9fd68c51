"""Speedtest.net endpoint providers."""

from __future__ import annotations

from proxyperf.config import (
    SPEEDTEST_CONFIG_URL,
    SPEEDTEST_SERVERS_URL,
    SPEEDTEST_STATIC_SERVERS_URL,
)
from proxyperf.providers.base import EndpointProvider


class SpeedtestProvider(EndpointProvider):
    """The public speedtest.net configuration and dynamic server list."""

    @property
    def name(self) -> str:
        return "Speedtest.net"

    @property
    def slug(self) -> str:
        return "speedtest"

    @property
    def config_url(self) -> str:
        return SPEEDTEST_CONFIG_URL

    @property
    def catalog_url(self) -> str:
        return SPEEDTEST_SERVERS_URL


class SpeedtestStaticProvider(SpeedtestProvider):
    """Same configuration, but the static server list.

    The static list changes rarely and answers when the dynamic one is
    rate-limited.
    """

    @property
    def name(self) -> str:
        return "Speedtest.net (static list)"

    @property
    def slug(self) -> str:
        return "speedtest-static"

    @property
    def catalog_url(self) -> str:
        return SPEEDTEST_STATIC_SERVERS_URL
