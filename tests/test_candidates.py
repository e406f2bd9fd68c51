"""Tests for proxyperf.candidates."""

import xml.etree.ElementTree as ET

import pytest

from proxyperf.candidates import CandidatePool, parse_candidate
from proxyperf.errors import CandidateParseError
from proxyperf.provider_config import parse_config

from tests.conftest import BERLIN, CONFIG_XML, SERVERS_XML, make_candidate


@pytest.fixture
def config():
    return parse_config(CONFIG_XML)


class TestParseCandidate:
    def test_fields(self):
        node = ET.fromstring(
            '<server url="http://a.test/speedtest/upload.php" lat="53.55" lon="10.00" '
            'name="Hamburg" country="Germany" sponsor="Hamburg Fiber" id="11" host="a.test:8080"/>'
        )
        candidate = parse_candidate(node, BERLIN)
        assert candidate.id == 11
        assert candidate.host == "a.test:8080"
        assert candidate.url == "http://a.test/speedtest/upload.php"
        assert candidate.distance_km == pytest.approx(255, abs=5)

    def test_missing_coordinates(self):
        node = ET.fromstring('<server url="u" name="n" country="c" sponsor="s" id="1" host="h"/>')
        with pytest.raises(CandidateParseError, match="lat"):
            parse_candidate(node, BERLIN)

    def test_non_numeric_id(self):
        node = ET.fromstring(
            '<server url="u" lat="1" lon="1" name="n" country="c" sponsor="s" id="abc" host="h"/>'
        )
        with pytest.raises(CandidateParseError):
            parse_candidate(node, BERLIN)

    @pytest.mark.parametrize(
        "url",
        [
            "http://a.test:abc/speedtest/upload.php",
            "ftp://a.test/speedtest/upload.php",
            "/speedtest/upload.php",
        ],
    )
    def test_unusable_url(self, url):
        node = ET.fromstring(
            f'<server url="{url}" lat="1" lon="1" name="n" country="c" sponsor="s" id="7" host="h"/>'
        )
        with pytest.raises(CandidateParseError, match="url"):
            parse_candidate(node, BERLIN)


class TestCandidatePool:
    def test_denylist_and_malformed_skipped(self, config):
        pool = CandidatePool.parse(SERVERS_XML, config)
        ids = [c.id for c in pool]
        assert ids == [10, 11, 12, 13]

    def test_bad_port_entry_skipped(self, config):
        document = SERVERS_XML.replace(
            "http://potsdam.test/speedtest", "http://potsdam.test:abc/speedtest"
        )
        pool = CandidatePool.parse(document, config)
        assert [c.id for c in pool] == [11, 12, 13]

    def test_denylisted_never_ranked(self, config):
        pool = CandidatePool.parse(SERVERS_XML, config)
        ranked_ids = {c.id for c in pool.ranked_by_distance()}
        assert ranked_ids.isdisjoint(config.ignore_ids)

    def test_ranked_by_distance(self, config):
        pool = CandidatePool.parse(SERVERS_XML, config)
        assert [c.id for c in pool.ranked_by_distance()] == [10, 11, 13, 12]

    def test_nearest(self, config):
        pool = CandidatePool.parse(SERVERS_XML, config)
        assert [c.id for c in pool.nearest(2)] == [10, 11]
        assert len(pool.nearest(50)) == 4

    def test_ranking_stable_for_ties(self):
        same_spot = [make_candidate(candidate_id=i, distance_km=100.0) for i in (5, 3, 9)]
        pool = CandidatePool(same_spot, BERLIN)
        first = [c.id for c in pool.ranked_by_distance()]
        assert first == [5, 3, 9]
        assert [c.id for c in pool.ranked_by_distance()] == first

    def test_distance_computed_when_missing(self):
        near = make_candidate(candidate_id=1, latitude=52.5, longitude=13.4)
        far = make_candidate(candidate_id=2, latitude=-33.87, longitude=151.21)
        pool = CandidatePool([far, near], BERLIN)
        assert [c.id for c in pool.ranked_by_distance()] == [1, 2]

    def test_all_denylisted_is_an_error(self, config):
        config.ignore_ids = {10, 11, 12, 13}
        with pytest.raises(CandidateParseError, match="no usable candidates"):
            CandidatePool.parse(SERVERS_XML, config)

    def test_malformed_catalog(self, config):
        with pytest.raises(CandidateParseError):
            CandidatePool.parse("<settings><servers>", config)
