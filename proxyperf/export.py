"""JSON export for measurement results."""

from __future__ import annotations

import json
from typing import Optional

from proxyperf.models import (
    Candidate,
    MeasurementRecord,
    ProxyMeasurement,
    ThroughputSample,
)


def export_json(record: MeasurementRecord, indent: int = 2) -> str:
    """Export one measurement record as a JSON string."""
    return json.dumps(record_to_dict(record), indent=indent, default=str)


def export_batch_json(results: list[ProxyMeasurement], indent: int = 2) -> str:
    """Export a batch result list as a JSON string."""
    data = [_proxy_measurement_to_dict(r) for r in results]
    return json.dumps(data, indent=indent, default=str)


def record_to_dict(record: MeasurementRecord) -> dict:
    """Build a serializable dictionary from a MeasurementRecord."""
    return {
        "mode": record.mode.value,
        "candidate": _candidate_to_dict(record.candidate),
        "latency_ms": round(record.latency.latency_ms, 3),
        "download": _sample_to_dict(record.download),
        "upload": _sample_to_dict(record.upload),
    }


def _candidate_to_dict(candidate: Candidate) -> dict:
    return {
        "id": candidate.id,
        "name": candidate.name,
        "sponsor": candidate.sponsor,
        "country": candidate.country,
        "host": candidate.host,
        "url": candidate.url,
        "lat": candidate.location.latitude,
        "lon": candidate.location.longitude,
        "distance_km": (
            round(candidate.distance_km, 1) if candidate.distance_km is not None else None
        ),
    }


def _sample_to_dict(sample: Optional[ThroughputSample]) -> Optional[dict]:
    if sample is None:
        return None
    return {
        "bytes": sample.size,
        "duration_s": round(sample.duration, 3),
        "bps": round(sample.bps, 2),
        "kbps": sample.kbps,
        "mbps": sample.mbps,
        "mbytes_per_second": sample.mbytes_per_second,
    }


def _proxy_measurement_to_dict(result: ProxyMeasurement) -> dict:
    info = result.measure_info
    return {
        "proxy_name": result.proxy_name,
        "measure_info": (
            {
                "speed": info.speed,
                "latency": round(info.latency_ms, 3),
                "download_kbps": info.download_kbps,
                "upload_kbps": info.upload_kbps,
            }
            if info is not None
            else None
        ),
        "error": result.error,
    }
