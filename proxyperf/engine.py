"""Throughput benchmark engine for proxyperf.

Runs one time-boxed transfer test per direction against the candidate
picked by the latency probe:

  download -> fixed ladder of images, streamed chunk by chunk
  upload   -> generated filler bodies POSTed to the candidate

Each direction gets its own ThreadPoolExecutor sized from the
MeasurementConfig, so the two passes never share a thread budget.  Workers
share only a read-only PhaseClock and a CancellationToken; every worker
builds its own httpx client.

Public API:
    ThroughputBenchmark   -- download() and upload() against one candidate
    build_download_requests, build_upload_requests
    CancellationToken, PhaseClock
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from functools import partial
from typing import Callable, Iterator, Optional
from urllib.parse import urljoin

import httpx

from proxyperf.client import DEFAULT_HEADERS, build_client
from proxyperf.config import (
    DOWNLOAD_RESOURCE,
    FAST_LINK_BPS,
    FAST_LINK_UPLOAD_THREADS,
    UPLOAD_FILLER,
    UPLOAD_PREFIX,
)
from proxyperf.errors import ThreadPoolError, TransferError
from proxyperf.models import Candidate, MeasurementConfig, ThroughputSample

logger = logging.getLogger(__name__)

# Type alias for the progress callback.
# Signature: (direction, completed_requests, total_requests)
ProgressCallback = Callable[[str, int, int], None]

UPLOAD_BLOCK_SIZE = 65536


# ---------------------------------------------------------------------------
# Shared worker state
# ---------------------------------------------------------------------------

class CancellationToken:
    """Cooperative stop flag, set only from outside the engine.

    Workers check it before and while transferring; a read already in
    flight completes before the flag is noticed.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class PhaseClock:
    """Start instant and maximum duration of one benchmark phase."""

    start: float  # time.perf_counter() value
    limit: float  # seconds

    @classmethod
    def start_now(cls, limit: float) -> PhaseClock:
        return cls(start=time.perf_counter(), limit=limit)

    def elapsed(self) -> float:
        return time.perf_counter() - self.start

    def expired(self) -> bool:
        return self.elapsed() >= self.limit


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------

def _timeout_extension(limit: float) -> dict:
    """Per-request timeout equal to the phase bound."""
    return {"timeout": httpx.Timeout(limit if limit > 0 else None).as_dict()}


def build_download_requests(
    candidate: Candidate,
    config: MeasurementConfig,
) -> list[httpx.Request]:
    """One GET per (size, repetition), in size-then-repetition order.

    Every URL carries an ``x=<epoch_ms>.<index>`` cache buster.
    """
    headers = {**DEFAULT_HEADERS, "Cache-Control": "no-cache"}
    extensions = _timeout_extension(config.download_length)
    requests: list[httpx.Request] = []
    for size in config.download_sizes:
        url = urljoin(candidate.url, DOWNLOAD_RESOURCE.format(size=size))
        for _ in range(config.download_count):
            stamp = int(time.time() * 1000)
            requests.append(
                httpx.Request(
                    "GET",
                    url,
                    params={"x": f"{stamp}.{len(requests)}"},
                    headers=headers,
                    extensions=extensions,
                )
            )
    return requests


def iter_payload(size: int) -> Iterator[bytes]:
    """Yield ``content1=`` followed by repeating filler, *size* bytes in total."""
    head = UPLOAD_PREFIX[:size]
    if head:
        yield head
    remaining = size - len(head)
    # A whole number of filler cycles, so consecutive blocks line up.
    block = UPLOAD_FILLER * (UPLOAD_BLOCK_SIZE // len(UPLOAD_FILLER))
    while remaining > 0:
        piece = block[:remaining]
        yield piece
        remaining -= len(piece)


def make_payload(size: int) -> bytes:
    return b"".join(iter_payload(size))


class UploadPayload:
    """Re-iterable filler body of an exact size, generated on demand."""

    def __init__(self, size: int) -> None:
        self.size = size

    def __iter__(self) -> Iterator[bytes]:
        return iter_payload(self.size)

    def __len__(self) -> int:
        return self.size


@dataclass(frozen=True)
class UploadRequest:
    """A POST to the candidate and the payload size it declares."""

    request: httpx.Request
    size: int


def build_upload_requests(
    candidate: Candidate,
    config: MeasurementConfig,
) -> list[UploadRequest]:
    """One POST per (size, repetition), in size-then-repetition order."""
    extensions = _timeout_extension(config.upload_length)
    requests: list[UploadRequest] = []
    for size in config.upload_sizes:
        for _ in range(config.upload_count):
            headers = {
                **DEFAULT_HEADERS,
                "Content-Type": "application/x-www-form-urlencoded",
                "Content-Length": str(size),
            }
            request = httpx.Request(
                "POST",
                candidate.url,
                content=UploadPayload(size),
                headers=headers,
                extensions=extensions,
            )
            requests.append(UploadRequest(request=request, size=size))
    return requests


def tune_upload_threads(config: MeasurementConfig, download: ThroughputSample) -> None:
    """Give the upload pass more workers when the download showed a fast link."""
    if download.bps > FAST_LINK_BPS and config.upload_threads < FAST_LINK_UPLOAD_THREADS:
        logger.info(
            "Fast link (%d kbps), raising upload threads from %d to %d",
            download.kbps,
            config.upload_threads,
            FAST_LINK_UPLOAD_THREADS,
        )
        config.upload_threads = FAST_LINK_UPLOAD_THREADS


# ---------------------------------------------------------------------------
# Benchmark
# ---------------------------------------------------------------------------

class ThroughputBenchmark:
    """Time-boxed, multithreaded transfer tests against one candidate."""

    def __init__(
        self,
        config: MeasurementConfig,
        candidate: Candidate,
        token: Optional[CancellationToken] = None,
        transport: Optional[httpx.BaseTransport] = None,
        progress_callback: Optional[ProgressCallback] = None,
        optimistic_upload_accounting: bool = True,
    ) -> None:
        self.config = config
        self.candidate = candidate
        self.token = token or CancellationToken()
        self.optimistic_upload_accounting = optimistic_upload_accounting
        self._transport = transport
        self._progress = progress_callback

    # -- download ----------------------------------------------------------

    def download(self) -> ThroughputSample:
        """Run the download pass and return bytes read over elapsed time.

        Raises the upload thread count on the shared config afterwards when
        the link turned out to be fast.
        """
        config = self.config
        requests = build_download_requests(self.candidate, config)
        logger.info(
            "Testing download speed: %d requests on %d threads",
            len(requests),
            config.download_threads,
        )

        clock = PhaseClock.start_now(config.download_length)
        jobs = [partial(self._download_one, request, clock) for request in requests]
        total = self._run_pool("download", config.download_threads, jobs)
        sample = ThroughputSample(size=total, duration=clock.elapsed())

        logger.info(
            "Download: %d bytes in %.2fs (%d kbps)", sample.size, sample.duration, sample.kbps,
        )
        tune_upload_threads(config, sample)
        return sample

    def _download_one(self, request: httpx.Request, clock: PhaseClock) -> int:
        """Stream one response; a failed request contributes nothing."""
        if clock.expired() or self.token.cancelled:
            return 0
        try:
            return self._stream_body(request, clock)
        except TransferError as exc:
            logger.debug("%s", exc)
            return 0

    def _stream_body(self, request: httpx.Request, clock: PhaseClock) -> int:
        logger.debug("Requesting %s", request.url)
        transferred = 0
        try:
            with build_client(self.config.proxy, transport=self._transport) as client:
                response = client.send(request, stream=True)
                try:
                    # One item per network read, so the bound is checked as data arrives.
                    chunks = response.iter_bytes()
                    while not clock.expired() and not self.token.cancelled:
                        chunk = next(chunks, b"")
                        if not chunk:
                            break
                        transferred += len(chunk)
                finally:
                    response.close()
        except httpx.HTTPError as exc:
            raise TransferError(f"GET {request.url} failed: {exc}") from exc
        return transferred

    # -- upload ------------------------------------------------------------

    def upload(self) -> ThroughputSample:
        """Run the upload pass, capped at the configured chunk-count ceiling."""
        config = self.config
        requests = build_upload_requests(self.candidate, config)
        executed = requests[: config.upload_max]
        dropped = len(requests) - len(executed)
        if dropped:
            logger.debug(
                "Dropping %d upload requests beyond the ceiling of %d",
                dropped,
                config.upload_max,
            )
        logger.info(
            "Testing upload speed: %d requests on %d threads",
            len(executed),
            config.upload_threads,
        )

        clock = PhaseClock.start_now(config.upload_length)
        jobs = [partial(self._upload_one, upload, clock) for upload in executed]
        total = self._run_pool("upload", config.upload_threads, jobs)
        sample = ThroughputSample(size=total, duration=clock.elapsed())

        logger.info(
            "Upload: %d bytes in %.2fs (%d kbps)", sample.size, sample.duration, sample.kbps,
        )
        return sample

    def _upload_one(self, upload: UploadRequest, clock: PhaseClock) -> int:
        """Send one payload once the phase is still open.

        With optimistic accounting a failed send still counts its declared
        size; otherwise it counts zero.
        """
        if clock.expired() or self.token.cancelled:
            return 0
        try:
            self._send(upload.request)
        except TransferError as exc:
            logger.debug("%s", exc)
            return upload.size if self.optimistic_upload_accounting else 0
        return upload.size

    def _send(self, request: httpx.Request) -> None:
        logger.debug("Requesting %s", request.url)
        try:
            with build_client(self.config.proxy, transport=self._transport) as client:
                client.send(request)
        except httpx.HTTPError as exc:
            raise TransferError(f"POST {request.url} failed: {exc}") from exc

    # -- worker pool -------------------------------------------------------

    def _run_pool(
        self,
        direction: str,
        threads: int,
        jobs: list[Callable[[], int]],
    ) -> int:
        """Run *jobs* on a dedicated pool of *threads* and sum their bytes."""
        try:
            executor = ThreadPoolExecutor(
                max_workers=threads,
                thread_name_prefix=f"proxyperf-{direction}",
            )
        except ValueError as exc:
            raise ThreadPoolError(f"cannot build {direction} pool of {threads}: {exc}") from exc

        total = 0
        with executor:
            try:
                futures = [executor.submit(job) for job in jobs]
            except RuntimeError as exc:
                executor.shutdown(wait=True, cancel_futures=True)
                raise ThreadPoolError(f"{direction} pool refused work: {exc}") from exc

            for completed, future in enumerate(as_completed(futures), 1):
                total += future.result()
                if self._progress:
                    self._progress(direction, completed, len(futures))
        return total
