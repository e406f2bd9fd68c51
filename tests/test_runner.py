"""End-to-end tests for proxyperf.runner against a mocked network."""

import re
import threading

import httpx
import pytest

from proxyperf.control import ProxyController
from proxyperf.engine import CancellationToken
from proxyperf.errors import (
    CandidateParseError,
    FetchError,
    NoReachableCandidate,
    ProxySelectionError,
)
from proxyperf.models import MeasurementMode, ProxyDescriptor, ProxyMode, RunOptions, Stage
from proxyperf.providers.generic import GenericProvider
from proxyperf.runner import MeasurementRunner, measure_proxies, run_measurement

from tests.conftest import CATALOG_URL, CONFIG_URL, CONFIG_XML, SERVERS_XML

IMAGE_RE = re.compile(r"random(\d+)x\d+\.jpg$")

OPTIONS = RunOptions(download_sizes=2, upload_sizes=1, download_count=1, upload_count=1)


class FakeNetwork:
    """Provider documents plus candidates, of which only *reachable* answer."""

    def __init__(self, reachable=("hamburg.test",), config=CONFIG_XML, catalog=SERVERS_XML):
        self.reachable = set(reachable)
        self.config = config
        self.catalog = catalog
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        url = str(request.url)
        if url == CONFIG_URL:
            if self.config is None:
                return httpx.Response(503)
            return httpx.Response(200, text=self.config)
        if url == CATALOG_URL:
            return httpx.Response(200, text=self.catalog)
        if request.url.host not in self.reachable:
            raise httpx.ConnectError("unreachable", request=request)
        if request.url.path.endswith("/latency.txt"):
            return httpx.Response(200, text="test=test")
        if request.method == "POST":
            return httpx.Response(200, text="size=%d" % len(request.content))
        match = IMAGE_RE.search(request.url.path)
        if match:
            return httpx.Response(200, content=b"x" * int(match.group(1)))
        return httpx.Response(404)

    def count(self, method: str) -> int:
        return sum(1 for r in self.requests if r.method == method and "mirror.test" not in str(r.url))


def make_runner(network: FakeNetwork, token=None) -> MeasurementRunner:
    return MeasurementRunner(
        provider=GenericProvider(CONFIG_URL, CATALOG_URL),
        options=OPTIONS,
        token=token,
        transport=httpx.MockTransport(network),
    )


class TestMeasurementRunner:
    def test_full_run(self):
        network = FakeNetwork()
        runner = make_runner(network)
        record = runner.run(MeasurementMode.FULL)

        assert runner.stage is Stage.COMPLETE
        assert record.mode is MeasurementMode.FULL
        assert record.candidate.id == 11
        assert record.latency.candidate == record.candidate
        assert record.download.size == 850
        assert record.upload.size == 524288
        assert network.count("POST") == 1

    def test_download_only(self):
        network = FakeNetwork()
        record = make_runner(network).run("download")
        assert record.download.size == 850
        assert record.upload is None
        assert network.count("POST") == 0

    def test_upload_only(self):
        network = FakeNetwork()
        record = make_runner(network).run(MeasurementMode.UPLOAD)
        assert record.download is None
        assert record.upload.size == 524288
        assert not any(IMAGE_RE.search(r.url.path) for r in network.requests)

    def test_only_nearest_are_probed(self):
        network = FakeNetwork()
        runner = MeasurementRunner(
            provider=GenericProvider(CONFIG_URL, CATALOG_URL),
            options=RunOptions(download_sizes=1, upload_sizes=1, nearest=1, probe_count=1),
            transport=httpx.MockTransport(network),
        )
        # Potsdam is nearest but unreachable; Hamburg is never probed.
        with pytest.raises(NoReachableCandidate):
            runner.run()
        probed = {r.url.host for r in network.requests if r.url.path.endswith("latency.txt")}
        assert probed == {"potsdam.test"}

    def test_config_fetch_failure_is_tagged(self):
        runner = make_runner(FakeNetwork(config=None))
        with pytest.raises(FetchError) as excinfo:
            runner.run()
        assert excinfo.value.stage is Stage.CONFIG_FETCH

    def test_bad_catalog_is_tagged(self):
        runner = make_runner(FakeNetwork(catalog="<settings><servers/></settings>"))
        with pytest.raises(CandidateParseError) as excinfo:
            runner.run()
        assert excinfo.value.stage is Stage.CANDIDATE_DISCOVERY

    def test_no_reachable_candidate_is_tagged(self):
        runner = make_runner(FakeNetwork(reachable=()))
        with pytest.raises(NoReachableCandidate) as excinfo:
            runner.run()
        assert excinfo.value.stage is Stage.LATENCY_PROBING

    def test_cancelled_run_stops_before_probing(self):
        token = CancellationToken()
        token.cancel()
        network = FakeNetwork()
        with pytest.raises(NoReachableCandidate, match="cancelled") as excinfo:
            make_runner(network, token=token).run()
        assert excinfo.value.stage is Stage.LATENCY_PROBING
        # Only the provider documents were fetched.
        assert all(r.url.host == "mirror.test" for r in network.requests)

    def test_run_measurement_wrapper(self):
        network = FakeNetwork()
        record = run_measurement(
            MeasurementMode.DOWNLOAD,
            ProxyDescriptor("http://127.0.0.1:7890"),
            provider=GenericProvider(CONFIG_URL, CATALOG_URL),
            options=OPTIONS,
            transport=httpx.MockTransport(network),
        )
        assert record.download.size == 850


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

class FakeController(ProxyController):
    def __init__(self, members, mode=ProxyMode.RULE, broken=()):
        self.members = list(members)
        self.mode = mode
        self.broken = set(broken)
        self.mode_changes: list[str] = []
        self.selected: list[str] = []

    def get_mode(self):
        return self.mode

    def set_mode(self, mode_name):
        self.mode_changes.append(mode_name)
        self.mode = ProxyMode(mode_name)

    def get_selectors(self):
        return ["GLOBAL"]

    def get_selector_members(self, selector_name):
        if selector_name != "GLOBAL":
            raise ProxySelectionError(f"{selector_name!r} is not a selector group")
        return self.members

    def select_member(self, selector_name, member_name):
        if member_name in self.broken:
            raise ProxySelectionError(f"PUT /proxies/{selector_name} failed: 400 Bad Request")
        self.selected.append(member_name)


class TestMeasureProxies:
    def test_failed_member_keeps_its_slot(self):
        controller = FakeController(["DIRECT", "A", "B", "C", "REJECT"], broken={"B"})
        results = measure_proxies(controller, runner=make_runner(FakeNetwork()))

        assert [r.proxy_name for r in results] == ["A", "B", "C"]
        first, second, third = results
        assert first.ok and first.measure_info is not None
        assert third.ok and third.measure_info is not None
        assert not second.ok
        assert second.error
        assert second.measure_info is None
        assert controller.selected == ["A", "C"]

    def test_measure_info(self):
        controller = FakeController(["A"])
        (result,) = measure_proxies(controller, runner=make_runner(FakeNetwork()))
        info = result.measure_info
        assert info.latency_ms >= 0
        assert info.download_kbps is not None
        assert info.speed == info.download_kbps

    def test_upload_only_speed(self):
        controller = FakeController(["A"])
        (result,) = measure_proxies(
            controller, mode="upload", runner=make_runner(FakeNetwork())
        )
        assert result.measure_info.download_kbps is None
        assert result.measure_info.speed == result.measure_info.upload_kbps

    def test_measurement_failure_recorded(self):
        controller = FakeController(["A", "B"])
        results = measure_proxies(controller, runner=make_runner(FakeNetwork(reachable=())))
        assert len(results) == 2
        assert all(not r.ok for r in results)

    def test_mode_forced_and_restored(self):
        controller = FakeController(["A"], mode=ProxyMode.RULE)
        measure_proxies(controller, runner=make_runner(FakeNetwork()))
        assert controller.mode_changes == ["global", "rule"]
        assert controller.mode is ProxyMode.RULE

    def test_global_mode_left_alone(self):
        controller = FakeController(["A"], mode=ProxyMode.GLOBAL)
        measure_proxies(controller, runner=make_runner(FakeNetwork()))
        assert controller.mode_changes == []

    def test_unknown_selector_restores_mode(self):
        controller = FakeController(["A"], mode=ProxyMode.DIRECT)
        with pytest.raises(ProxySelectionError):
            measure_proxies(controller, selector="Missing", runner=make_runner(FakeNetwork()))
        assert controller.mode is ProxyMode.DIRECT

    def test_custom_exclusions(self):
        controller = FakeController(["DIRECT", "A", "B"])
        results = measure_proxies(
            controller, exclude=("A",), runner=make_runner(FakeNetwork())
        )
        assert [r.proxy_name for r in results] == ["DIRECT", "B"]

    def test_member_with_bad_candidate_url(self):
        catalog = SERVERS_XML.replace(
            "http://potsdam.test/speedtest", "http://potsdam.test:abc/speedtest"
        )
        controller = FakeController(["A", "B"])
        results = measure_proxies(
            controller, runner=make_runner(FakeNetwork(catalog=catalog))
        )
        assert [r.proxy_name for r in results] == ["A", "B"]
        assert all(r.ok for r in results)

    def test_cancelled_batch_stops(self):
        token = CancellationToken()
        token.cancel()
        controller = FakeController(["A", "B"])
        results = measure_proxies(controller, runner=make_runner(FakeNetwork(), token=token))
        assert results == []
        assert controller.selected == []
