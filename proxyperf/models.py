"""Data models for proxyperf."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from proxyperf import stats
from proxyperf.config import (
    DEFAULT_DOWNLOAD_COUNT,
    DEFAULT_DOWNLOAD_SIZES,
    DEFAULT_PROVIDER,
    DEFAULT_TIMEOUT,
    DEFAULT_UPLOAD_COUNT,
    DEFAULT_UPLOAD_SIZES,
    NEAREST_CANDIDATES,
    PROBE_COUNT,
)


class MeasurementMode(str, Enum):
    """Which benchmark directions a run executes."""

    FULL = "full"
    DOWNLOAD = "download"
    UPLOAD = "upload"

    @property
    def runs_download(self) -> bool:
        return self in (MeasurementMode.FULL, MeasurementMode.DOWNLOAD)

    @property
    def runs_upload(self) -> bool:
        return self in (MeasurementMode.FULL, MeasurementMode.UPLOAD)


class ProxyMode(str, Enum):
    """Routing mode reported by the proxy control plane."""

    GLOBAL = "global"
    RULE = "rule"
    DIRECT = "direct"


class Stage(str, Enum):
    """States of one measurement run, in order."""

    CONFIG_FETCH = "config_fetch"
    CANDIDATE_DISCOVERY = "candidate_discovery"
    LATENCY_PROBING = "latency_probing"
    BENCHMARK_DOWNLOAD = "benchmark_download"
    BENCHMARK_UPLOAD = "benchmark_upload"
    COMPLETE = "complete"


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class ProxyDescriptor:
    """Outbound proxy used for every request of a run."""

    url: str


@dataclass(frozen=True)
class Candidate:
    """A measurement endpoint from the provider catalog."""

    id: int
    name: str
    host: str
    url: str  # base URL, the upload target
    country: str
    sponsor: str
    location: GeoPoint
    distance_km: Optional[float] = None  # relative to the client location


@dataclass
class MeasurementConfig:
    """Provider-derived parameters for one measurement run.

    Built once from the configuration document; the runner may shrink the
    size ladders and fix the repetition counts before benchmarking, and the
    download pass may raise ``upload_threads``.
    """

    location: GeoPoint
    client_ip: str = ""
    isp: str = ""
    ignore_ids: set[int] = field(default_factory=set)
    upload_sizes: list[int] = field(default_factory=list)
    download_sizes: list[int] = field(default_factory=list)
    upload_count: int = 1
    download_count: int = 1
    upload_threads: int = 1
    download_threads: int = 1
    upload_length: float = 10.0  # seconds
    download_length: float = 10.0  # seconds
    upload_max: int = 1  # chunk-count ceiling for the upload pass
    proxy: Optional[ProxyDescriptor] = None


@dataclass(frozen=True)
class RunOptions:
    """Local overrides applied on top of the provider configuration."""

    download_sizes: int = DEFAULT_DOWNLOAD_SIZES
    upload_sizes: int = DEFAULT_UPLOAD_SIZES
    download_count: int = DEFAULT_DOWNLOAD_COUNT
    upload_count: int = DEFAULT_UPLOAD_COUNT
    nearest: int = NEAREST_CANDIDATES
    probe_count: int = PROBE_COUNT
    probe_timeout: float = DEFAULT_TIMEOUT
    optimistic_upload_accounting: bool = True
    provider: str = DEFAULT_PROVIDER

    def __post_init__(self) -> None:
        for name in (
            "download_sizes",
            "upload_sizes",
            "download_count",
            "upload_count",
            "nearest",
            "probe_count",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.probe_timeout <= 0:
            raise ValueError("probe_timeout must be positive")


@dataclass(frozen=True)
class LatencyResult:
    """The fastest candidate and its aggregated trip time."""

    candidate: Candidate
    latency: float  # seconds

    @property
    def latency_ms(self) -> float:
        return self.latency * 1000.0


@dataclass(frozen=True)
class ThroughputSample:
    """Bytes moved in one direction and the wall-clock time it took.

    Rates are derived on access, never stored.
    """

    size: int  # bytes
    duration: float  # seconds

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValueError("size cannot be negative")
        if self.duration < 0:
            raise ValueError("duration cannot be negative")

    @property
    def bps(self) -> float:
        return stats.bits_per_second(self.size, self.duration)

    @property
    def kbps(self) -> int:
        return stats.kilobits_per_second(self.size, self.duration)

    @property
    def mbps(self) -> float:
        return stats.megabits_per_second(self.size, self.duration)

    @property
    def mbytes_per_second(self) -> float:
        return stats.megabytes_per_second(self.size, self.duration)


@dataclass(frozen=True)
class MeasurementRecord:
    """Complete result of one measurement run."""

    mode: MeasurementMode
    candidate: Candidate
    latency: LatencyResult
    download: Optional[ThroughputSample] = None
    upload: Optional[ThroughputSample] = None


@dataclass(frozen=True)
class MeasureInfo:
    """Condensed numbers for one proxy in a batch."""

    latency_ms: float
    download_kbps: Optional[int] = None
    upload_kbps: Optional[int] = None

    @property
    def speed(self) -> Optional[int]:
        if self.download_kbps is not None:
            return self.download_kbps
        return self.upload_kbps

    @classmethod
    def from_record(cls, record: MeasurementRecord) -> MeasureInfo:
        return cls(
            latency_ms=record.latency.latency_ms,
            download_kbps=record.download.kbps if record.download else None,
            upload_kbps=record.upload.kbps if record.upload else None,
        )


@dataclass(frozen=True)
class ProxyMeasurement:
    """One entry of a batch run: measurement data or an error, never both."""

    proxy_name: str
    measure_info: Optional[MeasureInfo] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
