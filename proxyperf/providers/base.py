"""Abstract base class for endpoint providers."""

from __future__ import annotations

import abc
import logging
from typing import Optional

import httpx

from proxyperf.client import build_client
from proxyperf.config import DEFAULT_TIMEOUT
from proxyperf.errors import FetchError
from proxyperf.models import ProxyDescriptor

logger = logging.getLogger(__name__)


class EndpointProvider(abc.ABC):
    """Base class that each endpoint provider must implement.

    A provider publishes two documents: the configuration (client location,
    thread counts, test lengths) and the catalog of candidate endpoints.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. 'Speedtest.net')."""

    @property
    @abc.abstractmethod
    def slug(self) -> str:
        """Short identifier (e.g. 'speedtest')."""

    @property
    @abc.abstractmethod
    def config_url(self) -> str:
        """URL of the configuration document."""

    @property
    @abc.abstractmethod
    def catalog_url(self) -> str:
        """URL of the candidate catalog."""

    def fetch_config(
        self,
        proxy: Optional[ProxyDescriptor] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> str:
        """Download the configuration document."""
        return self._fetch(self.config_url, "configuration", proxy, transport)

    def fetch_catalog(
        self,
        proxy: Optional[ProxyDescriptor] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> str:
        """Download the candidate catalog."""
        return self._fetch(self.catalog_url, "catalog", proxy, transport)

    def _fetch(
        self,
        url: str,
        what: str,
        proxy: Optional[ProxyDescriptor],
        transport: Optional[httpx.BaseTransport],
    ) -> str:
        logger.info("Downloading %s from %s", what, self.name)
        try:
            with build_client(proxy, DEFAULT_TIMEOUT, transport) as client:
                response = client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FetchError(f"Could not download {what} from {url}: {exc}") from exc
        logger.info("Downloaded %s (%d bytes)", what, len(response.content))
        return response.text
