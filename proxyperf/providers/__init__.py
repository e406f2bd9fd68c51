"""Endpoint provider registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proxyperf.providers.base import EndpointProvider

_PROVIDER_MAP: dict[str, type[EndpointProvider]] | None = None


def _load_providers() -> dict[str, type[EndpointProvider]]:
    from proxyperf.providers.speedtest import SpeedtestProvider, SpeedtestStaticProvider

    return {
        "speedtest": SpeedtestProvider,
        "speedtest-static": SpeedtestStaticProvider,
    }


def get_provider_map() -> dict[str, type[EndpointProvider]]:
    """Return the mapping of slug → provider class, loading lazily."""
    global _PROVIDER_MAP
    if _PROVIDER_MAP is None:
        _PROVIDER_MAP = _load_providers()
    return _PROVIDER_MAP


def get_provider(slug: str) -> EndpointProvider:
    """Instantiate a provider by slug."""
    pmap = get_provider_map()
    if slug not in pmap:
        raise ValueError(f"Unknown provider: {slug!r}. Available: {list(pmap)}")
    return pmap[slug]()


def list_providers() -> list[str]:
    """Return sorted list of available provider slugs."""
    return sorted(get_provider_map())


def create_generic_provider(config_url: str, catalog_url: str) -> EndpointProvider:
    """Create a :class:`GenericProvider` for self-hosted documents.

    This is not registered in the static provider map; it is created
    dynamically when the user passes ``--config-url`` and ``--catalog-url``.
    """
    from proxyperf.providers.generic import GenericProvider

    return GenericProvider(config_url, catalog_url)
