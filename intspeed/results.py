"""A full run's results: ordering, summary statistics and JSON persistence."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from .models import Result, UserInfo, _format_timestamp, _now, _parse_timestamp


@dataclass
class Stats:
    """Summary over all locations of a run."""

    total: int = 0
    successful: int = 0
    success_rate: float = 0.0
    avg_latency: float = 0.0
    avg_download: float = 0.0
    avg_upload: float = 0.0
    best_latency: Result | None = None
    best_download: Result | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "success_rate": self.success_rate,
            "avg_latency": self.avg_latency,
            "avg_download": self.avg_download,
            "avg_upload": self.avg_upload,
            "best_latency": self.best_latency.to_dict() if self.best_latency else None,
            "best_download": self.best_download.to_dict() if self.best_download else None,
        }


@dataclass
class TestResults:
    """Every location result from one run, with who ran it and when."""

    __test__ = False

    user_info: UserInfo | None = None
    tests: list[Result] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_now)
    version: str = ""

    def sort_by_latency(self) -> None:
        """Order successful results by latency; failed ones go last in their current order."""
        self.tests.sort(key=lambda t: (0, t.latency) if t.success else (1, 0.0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_info": self.user_info.to_dict() if self.user_info else None,
            "tests": [test.to_dict() for test in self.tests],
            "timestamp": _format_timestamp(self.timestamp),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TestResults:
        user = data.get("user_info")
        return cls(
            user_info=UserInfo.from_dict(user) if user is not None else None,
            tests=[Result.from_dict(item) for item in data.get("tests") or []],
            timestamp=_parse_timestamp(data.get("timestamp")),
            version=str(data.get("version", "")),
        )

    def save(self, filename: str | os.PathLike[str]) -> None:
        """Write the results as indented JSON."""
        text = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        Path(filename).write_text(text, encoding="utf-8")

    def get_stats(self) -> Stats:
        """Compute averages and best results over the successful tests."""
        stats = Stats(total=len(self.tests))
        successful = [test for test in self.tests if test.success]
        if not successful:
            return stats

        count = len(successful)
        stats.successful = count
        stats.success_rate = count / stats.total * 100
        stats.avg_latency = sum(t.latency for t in successful) / count
        stats.avg_download = sum(t.download_speed for t in successful) / count
        stats.avg_upload = sum(t.upload_speed for t in successful) / count

        best_latency = best_download = successful[0]
        for test in successful[1:]:
            if test.latency < best_latency.latency:
                best_latency = test
            if test.download_speed > best_download.download_speed:
                best_download = test
        stats.best_latency = best_latency
        stats.best_download = best_download
        return stats


def load(filename: str | os.PathLike[str]) -> TestResults:
    """Read results previously written by TestResults.save."""
    data = json.loads(Path(filename).read_text(encoding="utf-8"))
    return TestResults.from_dict(data)