"""Latency probing and fastest-candidate selection.

Probing is strictly sequential, across candidates and across the probes of
one candidate, so that no probe competes with another for bandwidth.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Sequence
from urllib.parse import urljoin

import httpx

from proxyperf.client import build_client
from proxyperf.config import DEFAULT_TIMEOUT, LATENCY_RESOURCE, PROBE_COUNT
from proxyperf.engine import CancellationToken
from proxyperf.errors import NoReachableCandidate
from proxyperf.models import Candidate, LatencyResult, ProxyDescriptor
from proxyperf.stats import trip_time

logger = logging.getLogger(__name__)


def latency_url(candidate: Candidate) -> str:
    """Return the probe resource next to the candidate's base URL."""
    return urljoin(candidate.url, LATENCY_RESOURCE)


class LatencyProbe:
    """Sequential latency prober bound to one outbound proxy."""

    def __init__(
        self,
        proxy: Optional[ProxyDescriptor] = None,
        probe_count: int = PROBE_COUNT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
        token: Optional[CancellationToken] = None,
    ) -> None:
        if probe_count < 1:
            raise ValueError("probe_count must be at least 1")
        self.proxy = proxy
        self.probe_count = probe_count
        self.timeout = timeout
        self._transport = transport
        self.token = token or CancellationToken()

    def probe(self, candidate: Candidate) -> Optional[float]:
        """Return the aggregated trip time of *candidate* in seconds.

        Returns None as soon as one probe fails on the network, or once the
        token is cancelled; the candidate is then out of the running rather
        than penalised.
        """
        url = latency_url(candidate)
        durations: list[float] = []
        with build_client(self.proxy, self.timeout, self._transport) as client:
            for _ in range(self.probe_count):
                if self.token.cancelled:
                    return None
                t0 = time.perf_counter()
                try:
                    response = client.get(url)
                except httpx.HTTPError as exc:
                    logger.debug("Probe to %s failed: %s", url, exc)
                    return None
                elapsed = time.perf_counter() - t0
                logger.debug(
                    "Sampled %.1f ms from %s (HTTP %d)",
                    elapsed * 1000.0,
                    url,
                    response.status_code,
                )
                durations.append(elapsed)

        latency = trip_time(durations)
        logger.debug("Trip to %s calculated at %.1f ms", candidate.host, latency * 1000.0)
        return latency

    def select_best(self, candidates: Sequence[Candidate]) -> LatencyResult:
        """Probe every candidate and return the one with the lowest trip time.

        Raises
        ------
        NoReachableCandidate
            If no candidate completed all of its probes before cancellation.
        """
        best: Optional[LatencyResult] = None
        for candidate in candidates:
            if self.token.cancelled:
                logger.info("Latency probing cancelled")
                break
            latency = self.probe(candidate)
            if latency is None:
                continue
            if best is None or latency < best.latency:
                best = LatencyResult(candidate=candidate, latency=latency)

        if best is None and self.token.cancelled:
            raise NoReachableCandidate("latency probing cancelled before any candidate answered")
        if best is None:
            raise NoReachableCandidate(
                f"none of {len(candidates)} candidates answered the latency probes"
            )
        logger.info(
            "Fastest candidate %s (%s) at %.1f ms",
            best.candidate.sponsor,
            best.candidate.host,
            best.latency_ms,
        )
        return best
