"""Speed test data records and the pure calculations over them."""

from __future__ import annotations

import random
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from operator import attrgetter
from typing import Any, Iterable, Mapping, Sequence

from .locations import Location

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_FRACTION = re.compile(r"\.(\d+)")


def _now() -> datetime:
    return datetime.now().astimezone()


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.isoformat()


def _parse_timestamp(text: str | None) -> datetime:
    """Parse an RFC 3339 timestamp, tolerating 'Z' and nanosecond fractions."""
    if not text:
        return _ZERO_TIME
    text = text.strip()
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class UserInfo:
    """The public address and provider of the machine running the tests."""

    ip: str = ""
    lat: str = ""
    lon: str = ""
    isp: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"IP": self.ip, "Lat": self.lat, "Lon": self.lon, "Isp": self.isp}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserInfo:
        return cls(
            ip=str(data.get("IP", "")),
            lat=str(data.get("Lat", "")),
            lon=str(data.get("Lon", "")),
            isp=str(data.get("Isp", "")),
        )


@dataclass
class SpeedtestServer:
    """A server entry as listed by the server search API."""

    id: str = ""
    name: str = ""
    country: str = ""
    cc: str = ""
    sponsor: str = ""
    host: str = ""
    url: str = ""
    lat: str = ""
    lon: str = ""
    distance: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SpeedtestServer:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            country=str(data.get("country", "")),
            cc=str(data.get("cc", "")),
            sponsor=str(data.get("sponsor", "")),
            host=str(data.get("host", "")),
            url=str(data.get("url", "")),
            lat=str(data.get("lat", "")),
            lon=str(data.get("lon", "")),
            distance=float(data.get("distance", 0.0)),
        )


@dataclass
class ISPResult:
    """Outcome of testing one provider's server."""

    server_id: str = ""
    server_name: str = ""
    isp: str = ""
    distance: float = 0.0
    latency: float = 0.0
    jitter: float = 0.0
    download_speed: float = 0.0
    upload_speed: float = 0.0
    packet_loss: float = 0.0
    success: bool = False
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "server_id": self.server_id,
            "server_name": self.server_name,
            "isp": self.isp,
            "distance_km": self.distance,
            "latency_ms": self.latency,
            "jitter_ms": self.jitter,
            "download_mbps": self.download_speed,
            "upload_mbps": self.upload_speed,
            "packet_loss_percent": self.packet_loss,
            "success": self.success,
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ISPResult:
        return cls(
            server_id=str(data.get("server_id", "")),
            server_name=str(data.get("server_name", "")),
            isp=str(data.get("isp", "")),
            distance=float(data.get("distance_km", 0.0)),
            latency=float(data.get("latency_ms", 0.0)),
            jitter=float(data.get("jitter_ms", 0.0)),
            download_speed=float(data.get("download_mbps", 0.0)),
            upload_speed=float(data.get("upload_mbps", 0.0)),
            packet_loss=float(data.get("packet_loss_percent", 0.0)),
            success=bool(data.get("success", False)),
            error=str(data.get("error", "")),
        )


_AGGREGATED_KEYS = {
    "avg_latency": "avg_latency_ms",
    "min_latency": "min_latency_ms",
    "max_latency": "max_latency_ms",
    "avg_download": "avg_download_mbps",
    "max_download": "max_download_mbps",
    "avg_upload": "avg_upload_mbps",
    "max_upload": "max_upload_mbps",
    "successful_isps": "successful_isps",
    "total_isps": "total_isps",
    "success_rate": "success_rate_percent",
}


@dataclass
class AggregatedStats:
    """Summary over all providers tested for one location."""

    avg_latency: float = 0.0
    min_latency: float = 0.0
    max_latency: float = 0.0
    avg_download: float = 0.0
    max_download: float = 0.0
    avg_upload: float = 0.0
    max_upload: float = 0.0
    successful_isps: int = 0
    total_isps: int = 0
    success_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, attr) for attr, key in _AGGREGATED_KEYS.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AggregatedStats:
        values: dict[str, Any] = {}
        for attr, key in _AGGREGATED_KEYS.items():
            if key in data:
                raw = data[key]
                values[attr] = int(raw) if attr.endswith("isps") else float(raw)
        return cls(**values)


@dataclass
class Result:
    """Outcome of testing one location across several providers."""

    location: Location
    isp_results: list[ISPResult] = field(default_factory=list)
    best_isp: ISPResult | None = None
    aggregated_stats: AggregatedStats = field(default_factory=AggregatedStats)
    timestamp: datetime = field(default_factory=_now)
    success: bool = False
    error: str = ""
    servers_attempted: int = 0
    test_duration: float = 0.0

    @property
    def latency(self) -> float:
        if self.best_isp is not None:
            return self.best_isp.latency
        return self.aggregated_stats.avg_latency

    @property
    def download_speed(self) -> float:
        if self.best_isp is not None:
            return self.best_isp.download_speed
        return self.aggregated_stats.avg_download

    @property
    def upload_speed(self) -> float:
        if self.best_isp is not None:
            return self.best_isp.upload_speed
        return self.aggregated_stats.avg_upload

    @property
    def server_city(self) -> str:
        if self.best_isp is not None:
            return self.best_isp.server_name
        return self.location.name

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "location": self.location.to_dict(),
            "isp_results": [isp.to_dict() for isp in self.isp_results],
            "best_isp": self.best_isp.to_dict() if self.best_isp is not None else None,
            "aggregated_stats": self.aggregated_stats.to_dict(),
            "timestamp": _format_timestamp(self.timestamp),
            "success": self.success,
        }
        if self.error:
            data["error"] = self.error
        data["servers_attempted"] = self.servers_attempted
        data["test_duration_seconds"] = self.test_duration
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Result:
        best = data.get("best_isp")
        return cls(
            location=Location.from_dict(data.get("location") or {}),
            isp_results=[ISPResult.from_dict(item) for item in data.get("isp_results") or []],
            best_isp=ISPResult.from_dict(best) if best is not None else None,
            aggregated_stats=AggregatedStats.from_dict(data.get("aggregated_stats") or {}),
            timestamp=_parse_timestamp(data.get("timestamp")),
            success=bool(data.get("success", False)),
            error=str(data.get("error", "")),
            servers_attempted=int(data.get("servers_attempted", 0)),
            test_duration=float(data.get("test_duration_seconds", 0.0)),
        )


def calculate_aggregated_stats(results: Sequence[ISPResult]) -> AggregatedStats:
    """Summarise provider results; only successful ones enter the averages."""
    stats = AggregatedStats(total_isps=len(results), min_latency=sys.float_info.max)
    if not results:
        return stats

    successful = [r for r in results if r.success]
    stats.successful_isps = len(successful)
    for r in successful:
        stats.min_latency = min(stats.min_latency, r.latency)
        stats.max_latency = max(stats.max_latency, r.latency)
        stats.max_download = max(stats.max_download, r.download_speed)
        stats.max_upload = max(stats.max_upload, r.upload_speed)

    if successful:
        count = len(successful)
        stats.avg_latency = sum(r.latency for r in successful) / count
        stats.avg_download = sum(r.download_speed for r in successful) / count
        stats.avg_upload = sum(r.upload_speed for r in successful) / count
        stats.success_rate = count / stats.total_isps * 100

    if stats.min_latency == sys.float_info.max:
        stats.min_latency = 0.0
    return stats


def find_best_isp(results: Iterable[ISPResult]) -> ISPResult | None:
    """Pick the successful result that best combines low latency and high bandwidth."""
    best: ISPResult | None = None
    best_score = -1.0
    for r in results:
        if not r.success:
            continue
        score = 1000.0 / (r.latency + 1) + (r.download_speed + r.upload_speed) * 2
        if score > best_score:
            best_score = score
            best = r
    return best


def select_random_isps(
    servers: Iterable[SpeedtestServer],
    max_isps: int,
    rng: random.Random | None = None,
) -> list[SpeedtestServer]:
    """Choose up to max_isps distinct sponsors at random, taking each one's closest server."""
    shuffler = rng if rng is not None else random
    by_sponsor: dict[str, list[SpeedtestServer]] = {}
    for server in servers:
        by_sponsor.setdefault(server.sponsor, []).append(server)

    sponsors = list(by_sponsor)
    shuffler.shuffle(sponsors)
    return [
        min(by_sponsor[sponsor], key=attrgetter("distance"))
        for sponsor in sponsors[: max(max_isps, 0)]
    ]