import json

import pytest

from intspeed.locations import find_by_name
from intspeed.models import ISPResult, Result, UserInfo
from intspeed.results import Stats, TestResults, load


def make_result(name, latency, download, upload, success=True):
    best = ISPResult(
        server_id="7",
        server_name=name,
        isp="Example ISP",
        latency=latency,
        download_speed=download,
        upload_speed=upload,
        success=success,
    )
    return Result(
        location=find_by_name(name),
        isp_results=[best],
        best_isp=best if success else None,
        success=success,
        error="" if success else "all ISPs failed",
    )


@pytest.fixture
def mixed():
    return TestResults(
        user_info=UserInfo(ip="192.0.2.1", lat="1", lon="2", isp="Example ISP"),
        tests=[
            make_result("London", 40.0, 100.0, 50.0),
            make_result("Tokyo", 0.0, 0.0, 0.0, success=False),
            make_result("Paris", 20.0, 300.0, 10.0),
            make_result("Sydney", 0.0, 0.0, 0.0, success=False),
        ],
        version="2.0.0",
    )


def test_sort_by_latency(mixed):
    mixed.sort_by_latency()
    names = [t.location.name for t in mixed.tests]
    assert names == ["Paris", "London", "Tokyo", "Sydney"]
    successes = [t.success for t in mixed.tests]
    assert successes == sorted(successes, reverse=True)


def test_stats_empty():
    stats = TestResults().get_stats()
    assert stats.total == 0
    assert stats.successful == 0
    assert stats.best_latency is None
    assert stats.best_download is None


def test_stats_all_failed():
    results = TestResults(tests=[make_result("Seoul", 0, 0, 0, success=False)])
    stats = results.get_stats()
    assert stats.total == 1
    assert stats.successful == 0
    assert stats.success_rate == 0.0
    assert stats.avg_latency == 0.0
    assert stats.best_latency is None


def test_stats_mixed(mixed):
    stats = mixed.get_stats()
    assert stats.total == 4
    assert stats.successful == 2
    assert stats.success_rate == 50.0
    assert stats.best_latency is mixed.tests[2]
    assert stats.best_download is mixed.tests[2]
    assert 20.0 <= stats.avg_latency <= 40.0
    assert 10.0 <= stats.avg_upload <= 50.0


def test_stats_single_success_averages_equal_values():
    results = TestResults(tests=[make_result("Dubai", 33.0, 77.0, 11.0)])
    stats = results.get_stats()
    assert stats.avg_latency == 33.0
    assert stats.avg_download == 77.0
    assert stats.avg_upload == 11.0
    assert stats.success_rate == 100.0


def test_stats_to_dict(mixed):
    stats = mixed.get_stats()
    data = stats.to_dict()
    assert data["best_latency"] == mixed.tests[2].to_dict()
    assert data["successful"] == 2
    assert Stats().to_dict()["best_download"] is None


def test_save_and_load_round_trip(tmp_path, mixed):
    path = tmp_path / "results.json"
    mixed.save(path)
    loaded = load(path)
    assert loaded == mixed
    assert loaded.user_info.ip == "192.0.2.1"


def test_saved_file_is_indented_json(tmp_path):
    results = TestResults(tests=[make_result("São Paulo", 90.0, 20.0, 5.0)], version="2.0.0")
    path = tmp_path / "latest.json"
    results.save(str(path))
    text = path.read_text(encoding="utf-8")
    assert text.startswith('{\n  "user_info": null')
    assert "São Paulo" in text
    data = json.loads(text)
    assert data["version"] == "2.0.0"
    assert data["tests"][0]["location"]["country_code"] == "BR"


def test_from_dict_null_fields():
    loaded = TestResults.from_dict({"user_info": None, "tests": None, "version": "2.0.0"})
    assert loaded.user_info is None
    assert loaded.tests == []
    assert loaded.version == "2.0.0"


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load(tmp_path / "absent.json")


def test_load_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        load(path)