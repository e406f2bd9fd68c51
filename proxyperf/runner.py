"""Measurement orchestration.

One run walks the stages in order and never retries one:

  config fetch -> candidate discovery -> latency probing
    -> download benchmark -> upload benchmark -> complete

The benchmark stages present depend on the requested MeasurementMode;
latency probing always runs.  Any stage failure ends the run with a
MeasurementError tagged with that stage, and no partial record is
returned.

Public API:
    MeasurementRunner  -- reusable runner bound to a provider and options
    run_measurement    -- one-shot convenience wrapper
    measure_proxies    -- measure every member of a control-plane selector
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

import httpx

from proxyperf.candidates import CandidatePool
from proxyperf.config import DEFAULT_EXCLUDED_MEMBERS, DEFAULT_MIXED_PROXY, DEFAULT_SELECTOR
from proxyperf.control import ProxyController
from proxyperf.engine import CancellationToken, ProgressCallback, ThroughputBenchmark
from proxyperf.errors import MeasurementError
from proxyperf.latency import LatencyProbe
from proxyperf.models import (
    MeasureInfo,
    MeasurementMode,
    MeasurementRecord,
    ProxyDescriptor,
    ProxyMeasurement,
    ProxyMode,
    RunOptions,
    Stage,
    ThroughputSample,
)
from proxyperf.provider_config import apply_overrides, parse_config
from proxyperf.providers import get_provider
from proxyperf.providers.base import EndpointProvider

logger = logging.getLogger(__name__)


class MeasurementRunner:
    """Runs measurements against one endpoint provider.

    The runner holds no state between runs apart from ``stage``, which
    reflects the last stage entered.
    """

    def __init__(
        self,
        provider: Optional[EndpointProvider] = None,
        options: Optional[RunOptions] = None,
        token: Optional[CancellationToken] = None,
        transport: Optional[httpx.BaseTransport] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.options = options or RunOptions()
        self.provider = provider or get_provider(self.options.provider)
        self.token = token or CancellationToken()
        self.stage: Optional[Stage] = None
        self._transport = transport
        self._progress = progress_callback

    def run(
        self,
        mode: Union[MeasurementMode, str] = MeasurementMode.FULL,
        outbound_proxy: Optional[ProxyDescriptor] = None,
    ) -> MeasurementRecord:
        """Execute one measurement run.

        Raises
        ------
        MeasurementError
            Any fatal failure, with ``stage`` set to where it happened.
        """
        mode = MeasurementMode(mode)
        try:
            return self._run(mode, outbound_proxy)
        except MeasurementError as exc:
            if exc.stage is None:
                exc.stage = self.stage
            raise

    def _enter(self, stage: Stage) -> None:
        self.stage = stage
        logger.debug("Entering stage %s", stage.value)

    def _run(
        self,
        mode: MeasurementMode,
        proxy: Optional[ProxyDescriptor],
    ) -> MeasurementRecord:
        options = self.options
        transport = self._transport

        self._enter(Stage.CONFIG_FETCH)
        config = parse_config(self.provider.fetch_config(proxy, transport), proxy)
        apply_overrides(config, options)

        self._enter(Stage.CANDIDATE_DISCOVERY)
        pool = CandidatePool.parse(self.provider.fetch_catalog(proxy, transport), config)
        nearest = pool.nearest(options.nearest)
        logger.info(
            "Probing the %d nearest of %d candidates", len(nearest), len(pool),
        )

        self._enter(Stage.LATENCY_PROBING)
        probe = LatencyProbe(
            proxy=proxy,
            probe_count=options.probe_count,
            timeout=options.probe_timeout,
            transport=transport,
            token=self.token,
        )
        latency = probe.select_best(nearest)

        benchmark = ThroughputBenchmark(
            config,
            latency.candidate,
            token=self.token,
            transport=transport,
            progress_callback=self._progress,
            optimistic_upload_accounting=options.optimistic_upload_accounting,
        )
        download: Optional[ThroughputSample] = None
        upload: Optional[ThroughputSample] = None
        # Download first: its result may raise the upload thread count.
        if mode.runs_download:
            self._enter(Stage.BENCHMARK_DOWNLOAD)
            download = benchmark.download()
        if mode.runs_upload:
            self._enter(Stage.BENCHMARK_UPLOAD)
            upload = benchmark.upload()

        self._enter(Stage.COMPLETE)
        return MeasurementRecord(
            mode=mode,
            candidate=latency.candidate,
            latency=latency,
            download=download,
            upload=upload,
        )


def run_measurement(
    mode: Union[MeasurementMode, str] = MeasurementMode.FULL,
    outbound_proxy: Optional[ProxyDescriptor] = None,
    **runner_kwargs,
) -> MeasurementRecord:
    """Run a single measurement with a throwaway MeasurementRunner."""
    return MeasurementRunner(**runner_kwargs).run(mode, outbound_proxy)


# ---------------------------------------------------------------------------
# Batch measurement over control-plane proxies
# ---------------------------------------------------------------------------

def _measure_member(
    controller: ProxyController,
    runner: MeasurementRunner,
    selector: str,
    member: str,
    mode: MeasurementMode,
    outbound_proxy: Optional[ProxyDescriptor],
) -> ProxyMeasurement:
    try:
        controller.select_member(selector, member)
        record = runner.run(mode, outbound_proxy)
    except MeasurementError as exc:
        logger.warning("Measurement through %s failed: %s", member, exc)
        return ProxyMeasurement(proxy_name=member, error=str(exc) or type(exc).__name__)
    return ProxyMeasurement(proxy_name=member, measure_info=MeasureInfo.from_record(record))


def measure_proxies(
    controller: ProxyController,
    selector: str = DEFAULT_SELECTOR,
    mode: Union[MeasurementMode, str] = MeasurementMode.FULL,
    outbound_proxy: Optional[ProxyDescriptor] = ProxyDescriptor(DEFAULT_MIXED_PROXY),
    exclude: Iterable[str] = DEFAULT_EXCLUDED_MEMBERS,
    runner: Optional[MeasurementRunner] = None,
) -> list[ProxyMeasurement]:
    """Measure through every non-excluded member of *selector*.

    The control plane is switched to global mode for the batch and put
    back afterwards.  A failing member gets an entry carrying the error;
    the batch always runs to the end unless the runner's token is
    cancelled.

    Raises
    ------
    ProxySelectionError
        If the mode or the member list cannot be read.
    """
    mode = MeasurementMode(mode)
    runner = runner or MeasurementRunner()
    excluded = set(exclude)

    previous = controller.get_mode()
    forced = previous is not ProxyMode.GLOBAL
    if forced:
        controller.set_mode(ProxyMode.GLOBAL.value)

    results: list[ProxyMeasurement] = []
    try:
        members = [m for m in controller.get_selector_members(selector) if m not in excluded]
        logger.info("Measuring %d proxies in %s", len(members), selector)
        for member in members:
            if runner.token.cancelled:
                logger.info("Batch cancelled after %d proxies", len(results))
                break
            results.append(
                _measure_member(controller, runner, selector, member, mode, outbound_proxy)
            )
    finally:
        if forced:
            try:
                controller.set_mode(previous.value)
            except MeasurementError as exc:
                logger.warning("Could not restore proxy mode %s: %s", previous.value, exc)
    return results
