"""Network client: finds servers near a city and measures latency and throughput."""

from __future__ import annotations

import math
import random
import time
import xml.etree.ElementTree as ElementTree
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from statistics import fmean
from typing import Callable
from urllib.parse import quote_plus, urljoin

import requests

from .locations import Location
from .models import (
    ISPResult,
    Result,
    SpeedtestServer,
    UserInfo,
    calculate_aggregated_stats,
    find_best_isp,
    select_random_isps,
)

SERVERS_API_URL = "https://www.speedtest.net/api/js/servers"
CONFIG_URL = "https://www.speedtest.net/speedtest-config.php"

_DOWNLOAD_FILE = "random1000x1000.jpg"
_UPLOAD_SIZE = 1 << 20
_CHUNK_SIZE = 64 * 1024
_MAX_LATENCY_MS = 5000.0
_MIN_USEFUL_MBPS = 0.5


class SpeedtestError(Exception):
    """Raised when a server lookup or a measurement fails."""


@dataclass
class Config:
    """Client settings; zero or empty values fall back to the defaults."""

    threads: int = 2
    timeout: float = 180.0
    user_agent: str = "intspeed/2.0"
    max_isps: int = 5
    isp_timeout: float = 60.0
    phase_duration: float = 10.0
    ping_count: int = 10

    def __post_init__(self) -> None:
        if not self.user_agent:
            self.user_agent = "intspeed/2.0"
        if not self.timeout:
            self.timeout = 180.0
        if not self.threads:
            self.threads = 2
        if not self.max_isps:
            self.max_isps = 5
        if not self.isp_timeout:
            self.isp_timeout = 60.0
        if not self.ping_count:
            self.ping_count = 10


class _Deadline:
    """A point in time after which work must stop, optionally bounded by a parent."""

    def __init__(self, seconds: float, parent: _Deadline | None = None) -> None:
        end = time.monotonic() + seconds
        if parent is not None:
            end = min(end, parent.end)
        self.end = end

    def remaining(self) -> float:
        left = self.end - time.monotonic()
        if left <= 0:
            raise SpeedtestError("context deadline exceeded")
        return left


def _sane_speed(speed: float) -> float:
    if math.isnan(speed) or math.isinf(speed) or speed < 0:
        return 0.0
    return speed


class SpeedtestClient:
    """Runs location tests against servers found through the server search API."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        session: requests.Session | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config if config is not None else Config()
        self._session = session if session is not None else requests.Session()
        self._rng = rng
        self._sleep = sleep
        self._echo = echo if echo is not None else print

    @property
    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self.config.user_agent}

    def test_location(self, location: Location) -> Result:
        """Test several providers in a location's city and summarise the outcome."""
        started = time.monotonic()
        result = Result(location=location)
        deadline = _Deadline(self.config.timeout)

        try:
            servers = self._fetch_servers(location.name, deadline)
        except SpeedtestError as exc:
            result.error = f"API error: {exc}"
            result.test_duration = time.monotonic() - started
            return result

        if not servers:
            result.error = f"no servers found for {location.name}"
            result.test_duration = time.monotonic() - started
            return result

        selected = select_random_isps(servers, self.config.max_isps, self._rng)
        result.servers_attempted = len(selected)

        self._echo(
            f"    Found {len(servers)} ISPs for {location.name}, testing {len(selected)}:"
        )
        for number, server in enumerate(selected, 1):
            self._echo(f"      {number}. {server.sponsor} - {server.name} ({server.distance:.0f}km)")

        result.isp_results = self._test_isps(selected, deadline)
        result.aggregated_stats = calculate_aggregated_stats(result.isp_results)
        result.best_isp = find_best_isp(result.isp_results)
        result.success = result.aggregated_stats.successful_isps > 0
        if not result.success:
            result.error = "all ISPs failed"

        result.test_duration = time.monotonic() - started
        return result

    def fetch_servers_for_city(self, city_name: str) -> list[SpeedtestServer]:
        """Search the server list for a city name."""
        return self._fetch_servers(city_name, _Deadline(self.config.timeout))

    def _fetch_servers(self, city_name: str, deadline: _Deadline) -> list[SpeedtestServer]:
        url = (
            f"{SERVERS_API_URL}?engine=js&https_functional=true&limit=100"
            f"&search={quote_plus(city_name)}"
        )
        headers = {**self._headers, "Accept": "application/json"}
        try:
            response = self._session.get(url, headers=headers, timeout=deadline.remaining())
        except requests.RequestException as exc:
            raise SpeedtestError(str(exc)) from exc
        if response.status_code != 200:
            raise SpeedtestError(f"API returned status {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SpeedtestError(f"invalid server list: {exc}") from exc
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise SpeedtestError("invalid server list: expected an array")
        return [SpeedtestServer.from_dict(item) for item in payload]

    def _test_isps(self, servers: list[SpeedtestServer], deadline: _Deadline) -> list[ISPResult]:
        results: list[ISPResult] = []
        for number, server in enumerate(servers, 1):
            self._echo(f"    [{number}/{len(servers)}] Testing {server.sponsor} - {server.name}...")
            outcome = self._test_single_isp(server, deadline)
            results.append(outcome)
            if outcome.success:
                self._echo(
                    f"    ✅ {server.sponsor}: {outcome.latency:.1f}ms, "
                    f"↓{outcome.download_speed:.1f} Mbps, ↑{outcome.upload_speed:.1f} Mbps"
                )
            else:
                self._echo(f"    ❌ {server.sponsor}: {outcome.error}")
            if number < len(servers):
                self._sleep(1)
        return results

    def test_single_isp(self, server: SpeedtestServer) -> ISPResult:
        """Measure latency, download and upload against one server."""
        return self._test_single_isp(server, None)

    def _test_single_isp(self, server: SpeedtestServer, parent: _Deadline | None) -> ISPResult:
        result = ISPResult(
            server_id=server.id,
            server_name=server.name,
            isp=server.sponsor,
            distance=server.distance,
        )
        deadline = _Deadline(self.config.isp_timeout, parent)
        upload_url = server.url or f"http://{server.host}/speedtest/upload.php"

        try:
            latency, jitter = self._ping(urljoin(upload_url, "latency.txt"), deadline)
        except SpeedtestError as exc:
            result.error = f"ping failed: {exc}"
            return result
        result.latency = latency
        result.jitter = jitter

        if result.latency <= 0 or result.latency > _MAX_LATENCY_MS:
            result.error = "invalid latency"
            return result

        download_url = urljoin(upload_url, _DOWNLOAD_FILE)
        try:
            result.download_speed = _sane_speed(
                self._measure(lambda timeout: self._download(download_url, timeout), deadline)
            )
        except SpeedtestError as exc:
            result.error = f"download failed: {exc}"
            return result

        payload = b"0" * _UPLOAD_SIZE
        try:
            result.upload_speed = _sane_speed(
                self._measure(lambda timeout: self._upload(upload_url, payload, timeout), deadline)
            )
        except SpeedtestError as exc:
            result.error = f"upload failed: {exc}"
            return result

        if result.download_speed >= _MIN_USEFUL_MBPS or result.upload_speed >= _MIN_USEFUL_MBPS:
            result.success = True
        else:
            result.error = (
                f"speeds too low: dl={result.download_speed:.1f} ul={result.upload_speed:.1f}"
            )
        return result

    def _ping(self, url: str, deadline: _Deadline) -> tuple[float, float]:
        """Return mean round-trip time and mean successive difference, both in ms."""
        samples: list[float] = []
        for _ in range(self.config.ping_count):
            started = time.perf_counter()
            try:
                response = self._session.get(url, headers=self._headers, timeout=deadline.remaining())
                response.raise_for_status()
            except requests.RequestException as exc:
                raise SpeedtestError(str(exc)) from exc
            samples.append((time.perf_counter() - started) * 1000)
        differences = [abs(b - a) for a, b in zip(samples, samples[1:])]
        jitter = fmean(differences) if differences else 0.0
        return fmean(samples), jitter

    def _download(self, url: str, timeout: float) -> int:
        with self._session.get(url, headers=self._headers, timeout=timeout, stream=True) as response:
            response.raise_for_status()
            return sum(len(chunk) for chunk in response.iter_content(_CHUNK_SIZE))

    def _upload(self, url: str, payload: bytes, timeout: float) -> int:
        response = self._session.post(url, data=payload, headers=self._headers, timeout=timeout)
        response.raise_for_status()
        return len(payload)

    def _measure(self, transfer: Callable[[float], int], deadline: _Deadline) -> float:
        """Run transfers on every thread for the phase duration; return Mbps."""
        phase_end = min(time.monotonic() + self.config.phase_duration, deadline.end)

        def worker() -> tuple[int, Exception | None]:
            total = 0
            while True:
                try:
                    total += transfer(deadline.remaining())
                except (requests.RequestException, SpeedtestError) as exc:
                    return total, exc
                if time.monotonic() >= phase_end:
                    return total, None

        started = time.monotonic()
        threads = max(self.config.threads, 1)
        with ThreadPoolExecutor(max_workers=threads) as pool:
            outcomes = [f.result() for f in [pool.submit(worker) for _ in range(threads)]]
        elapsed = time.monotonic() - started

        total = sum(count for count, _ in outcomes)
        errors = [error for _, error in outcomes if error is not None]
        if total == 0 and errors:
            raise SpeedtestError(str(errors[0]))
        if elapsed <= 0:
            return 0.0
        return total * 8 / elapsed / 1e6

    def get_user_info(self) -> UserInfo:
        """Fetch the public address, position and provider of this machine."""
        try:
            response = self._session.get(CONFIG_URL, headers=self._headers, timeout=self.config.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SpeedtestError(str(exc)) from exc
        try:
            root = ElementTree.fromstring(response.content)
        except ElementTree.ParseError as exc:
            raise SpeedtestError(f"invalid configuration: {exc}") from exc
        client = root if root.tag == "client" else root.find("client")
        if client is None:
            raise SpeedtestError("user info not found")
        return UserInfo(
            ip=client.get("ip", ""),
            lat=client.get("lat", ""),
            lon=client.get("lon", ""),
            isp=client.get("isp", ""),
        )