"""Generic provider for self-hosted configuration and catalog URLs."""

from __future__ import annotations

from proxyperf.providers.base import EndpointProvider


class GenericProvider(EndpointProvider):
    """A provider reading both documents from arbitrary URLs.

    Used for mirrors that serve speedtest.net-compatible documents.  It is
    not registered in the static provider map.
    """

    def __init__(self, config_url: str, catalog_url: str) -> None:
        self._config_url = config_url
        self._catalog_url = catalog_url

    @property
    def name(self) -> str:
        return "Custom"

    @property
    def slug(self) -> str:
        return "custom"

    @property
    def config_url(self) -> str:
        return self._config_url

    @property
    def catalog_url(self) -> str:
        return self._catalog_url
