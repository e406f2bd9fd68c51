"""Shared documents and factories for the proxyperf tests."""

from __future__ import annotations

import pytest

from proxyperf.models import Candidate, GeoPoint, MeasurementConfig

CONFIG_URL = "http://mirror.test/speedtest-config.php"
CATALOG_URL = "http://mirror.test/speedtest-servers.php"

CONFIG_XML = """<?xml version="1.0" encoding="UTF-8"?>
<settings>
  <client ip="203.0.113.5" lat="52.52" lon="13.40" isp="Example Telecom" />
  <server-config threadcount="4" ignoreids="1,2" notonmap="" forcepingid="" />
  <download testlength="10" initialtest="250K" mintestsize="250K" threadsperurl="4" />
  <upload testlength="10" ratio="5" initialtest="0" mintestsize="32K" threads="2"
          maxchunksize="512K" maxchunkcount="50" threadsperurl="4" />
</settings>
"""

# Client sits in Berlin.  Server 1 is the closest but denylisted; server 14
# is missing its coordinates.
SERVERS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<settings>
  <servers>
    <server url="http://berlin-ignored.test/speedtest/upload.php" lat="52.52" lon="13.40"
            name="Berlin" country="Germany" cc="DE" sponsor="Ignored" id="1"
            host="berlin-ignored.test:8080" />
    <server url="http://potsdam.test/speedtest/upload.php" lat="52.39" lon="13.06"
            name="Potsdam" country="Germany" cc="DE" sponsor="Potsdam Net" id="10"
            host="potsdam.test:8080" />
    <server url="http://hamburg.test/speedtest/upload.php" lat="53.55" lon="10.00"
            name="Hamburg" country="Germany" cc="DE" sponsor="Hamburg Fiber" id="11"
            host="hamburg.test:8080" />
    <server url="http://sydney.test/speedtest/upload.php" lat="-33.87" lon="151.21"
            name="Sydney" country="Australia" cc="AU" sponsor="Sydney Link" id="12"
            host="sydney.test:8080" />
    <server url="http://warsaw.test/speedtest/upload.php" lat="52.23" lon="21.01"
            name="Warsaw" country="Poland" cc="PL" sponsor="Warsaw ISP" id="13"
            host="warsaw.test:8080" />
    <server url="http://broken.test/speedtest/upload.php"
            name="Nowhere" country="Germany" cc="DE" sponsor="Broken" id="14"
            host="broken.test:8080" />
  </servers>
</settings>
"""

BERLIN = GeoPoint(latitude=52.52, longitude=13.40)


def make_candidate(
    candidate_id: int = 10,
    host: str = "potsdam.test",
    latitude: float = 52.39,
    longitude: float = 13.06,
    distance_km: float | None = None,
) -> Candidate:
    return Candidate(
        id=candidate_id,
        name=host.split(".")[0].title(),
        host=f"{host}:8080",
        url=f"http://{host}/speedtest/upload.php",
        country="Germany",
        sponsor=f"Sponsor {candidate_id}",
        location=GeoPoint(latitude=latitude, longitude=longitude),
        distance_km=distance_km,
    )


@pytest.fixture
def candidate() -> Candidate:
    return make_candidate()


@pytest.fixture
def bench_config() -> MeasurementConfig:
    """A small configuration that finishes instantly against a mock server."""
    return MeasurementConfig(
        location=BERLIN,
        upload_sizes=[32768],
        download_sizes=[350, 500],
        upload_count=1,
        download_count=1,
        upload_threads=2,
        download_threads=2,
        upload_length=10.0,
        download_length=10.0,
        upload_max=50,
    )
