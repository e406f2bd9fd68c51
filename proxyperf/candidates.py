"""Candidate catalog parsing and distance ranking."""

from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from typing import Iterator

import httpx

from proxyperf.errors import CandidateParseError
from proxyperf.location import distance
from proxyperf.models import Candidate, GeoPoint, MeasurementConfig

logger = logging.getLogger(__name__)

_REQUIRED = ("id", "url", "host", "name", "country", "sponsor", "lat", "lon")


def _parse_url(raw: str, candidate_id: int) -> str:
    """Return *raw* when it is an absolute http(s) URL with a host."""
    try:
        url = httpx.URL(raw)
    except (httpx.InvalidURL, ValueError) as exc:
        raise CandidateParseError(f"server entry {candidate_id}: bad url {raw!r}: {exc}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise CandidateParseError(f"server entry {candidate_id}: unusable url {raw!r}")
    return raw


def parse_candidate(node: ET.Element, reference: GeoPoint) -> Candidate:
    """Build one Candidate from a ``<server>`` element.

    Raises CandidateParseError when an attribute is missing or malformed.
    """
    missing = [name for name in _REQUIRED if node.get(name) is None]
    if missing:
        raise CandidateParseError(f"server entry missing {', '.join(missing)}")

    try:
        candidate_id = int(node.get("id", ""))
        latitude = float(node.get("lat", ""))
        longitude = float(node.get("lon", ""))
    except ValueError as exc:
        raise CandidateParseError(f"server entry {node.get('id')!r}: {exc}") from exc
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise CandidateParseError(f"server entry {candidate_id}: non-finite location")

    url = _parse_url(node.get("url", ""), candidate_id)

    location = GeoPoint(latitude=latitude, longitude=longitude)
    return Candidate(
        id=candidate_id,
        name=node.get("name", ""),
        host=node.get("host", ""),
        url=url,
        country=node.get("country", ""),
        sponsor=node.get("sponsor", ""),
        location=location,
        distance_km=distance(reference, location),
    )


class CandidatePool:
    """Usable candidates of one catalog, with distances to the client."""

    def __init__(self, candidates: list[Candidate], reference: GeoPoint) -> None:
        self._candidates = list(candidates)
        self.reference = reference

    @classmethod
    def parse(cls, document: str, config: MeasurementConfig) -> CandidatePool:
        """Parse the catalog XML, skipping malformed and denylisted entries.

        Raises
        ------
        CandidateParseError
            If the document is not XML or no usable entry remains.
        """
        try:
            root = ET.fromstring(document)
        except ET.ParseError as exc:
            raise CandidateParseError(f"malformed catalog: {exc}") from exc

        candidates: list[Candidate] = []
        skipped = 0
        ignored = 0
        for node in root.iter("server"):
            try:
                candidate = parse_candidate(node, config.location)
            except CandidateParseError as exc:
                logger.debug("Skipping catalog entry: %s", exc)
                skipped += 1
                continue
            if candidate.id in config.ignore_ids:
                ignored += 1
                continue
            candidates.append(candidate)

        if skipped:
            logger.warning("Skipped %d malformed catalog entries", skipped)
        if not candidates:
            raise CandidateParseError(
                f"no usable candidates in catalog ({skipped} malformed, {ignored} denylisted)"
            )
        logger.info("Catalog holds %d usable candidates", len(candidates))
        return cls(candidates, config.location)

    def __len__(self) -> int:
        return len(self._candidates)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self._candidates)

    def ranked_by_distance(self) -> list[Candidate]:
        """Candidates by ascending distance; ties keep catalog order."""
        return sorted(self._candidates, key=self._distance_to)

    def nearest(self, count: int) -> list[Candidate]:
        """The *count* closest candidates."""
        return self.ranked_by_distance()[:count]

    def _distance_to(self, candidate: Candidate) -> float:
        if candidate.distance_km is not None:
            return candidate.distance_km
        return distance(self.reference, candidate.location)
