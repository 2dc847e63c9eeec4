import random

import pytest
import responses

from intspeed.client import (
    CONFIG_URL,
    SERVERS_API_URL,
    Config,
    SpeedtestClient,
    SpeedtestError,
)
from intspeed.locations import find_by_name
from intspeed.models import SpeedtestServer

BASE = "http://speed.example.com:8080/speedtest/"


@pytest.fixture
def mock():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def _client(**overrides):
    settings = dict(threads=1, phase_duration=0.01, ping_count=2)
    settings.update(overrides)
    sleeps = []
    lines = []
    client = SpeedtestClient(
        Config(**settings),
        rng=random.Random(0),
        sleep=sleeps.append,
        echo=lines.append,
    )
    return client, sleeps, lines


def _server_entry(sponsor, name="Node", distance=10.0, base=BASE):
    return {
        "id": sponsor.lower().replace(" ", "-"),
        "name": name,
        "country": "Japan",
        "cc": "JP",
        "sponsor": sponsor,
        "host": "speed.example.com:8080",
        "url": base + "upload.php",
        "lat": "35.6",
        "lon": "139.6",
        "distance": distance,
    }


def _mock_server(mock, base=BASE, download_status=200, ping_status=200):
    mock.add(responses.GET, base + "latency.txt", body="test=test", status=ping_status)
    mock.add(responses.GET, base + "random1000x1000.jpg", body=b"x" * 200_000, status=download_status)
    mock.add(responses.POST, base + "upload.php", body="size=1048576")


def test_config_zero_values_fall_back_to_defaults():
    config = Config(threads=0, timeout=0, user_agent="", max_isps=0)
    assert (config.threads, config.timeout, config.user_agent, config.max_isps) == (
        2,
        180.0,
        "intspeed/2.0",
        5,
    )


def test_fetch_servers_parses_list_and_sends_query(mock):
    mock.add(responses.GET, SERVERS_API_URL, json=[_server_entry("Alpha Net", distance=3.5)])
    client, _, _ = _client()
    servers = client.fetch_servers_for_city("New York")
    assert servers == [SpeedtestServer.from_dict(_server_entry("Alpha Net", distance=3.5))]
    request = mock.calls[0].request
    assert "search=New+York" in request.url
    assert "limit=100" in request.url
    assert request.headers["User-Agent"] == "intspeed/2.0"
    assert request.headers["Accept"] == "application/json"


def test_fetch_servers_bad_status_raises(mock):
    mock.add(responses.GET, SERVERS_API_URL, status=500)
    client, _, _ = _client()
    with pytest.raises(SpeedtestError, match="API returned status 500"):
        client.fetch_servers_for_city("Tokyo")


def test_location_reports_api_error(mock):
    mock.add(responses.GET, SERVERS_API_URL, status=503)
    client, _, _ = _client()
    result = client.test_location(find_by_name("Tokyo"))
    assert not result.success
    assert result.error == "API error: API returned status 503"
    assert result.servers_attempted == 0


def test_location_with_no_servers(mock):
    mock.add(responses.GET, SERVERS_API_URL, json=[])
    client, _, _ = _client()
    result = client.test_location(find_by_name("London"))
    assert not result.success
    assert result.error == "no servers found for London"


def test_location_success_with_one_isp(mock):
    mock.add(responses.GET, SERVERS_API_URL, json=[_server_entry("Alpha Net", "Tokyo")])
    _mock_server(mock)
    client, sleeps, lines = _client()
    result = client.test_location(find_by_name("Tokyo"))
    assert result.success
    assert result.error == ""
    assert result.servers_attempted == 1
    assert result.best_isp is not None
    assert result.best_isp.isp == "Alpha Net"
    assert result.best_isp.server_name == "Tokyo"
    assert result.aggregated_stats.successful_isps == 1
    assert result.aggregated_stats.total_isps == 1
    assert result.download_speed > 0
    assert result.upload_speed > 0
    assert 0 < result.latency <= 5000
    assert sleeps == []
    assert "    Found 1 ISPs for Tokyo, testing 1:" in lines


def test_location_picks_closest_server_per_sponsor_and_pauses(mock):
    other = "http://other.example.com/speedtest/"
    mock.add(
        responses.GET,
        SERVERS_API_URL,
        json=[
            _server_entry("Alpha Net", "Far", distance=90.0, base=other),
            _server_entry("Alpha Net", "Near", distance=5.0),
            _server_entry("Beta Net", "Only", distance=20.0),
        ],
    )
    _mock_server(mock)
    client, sleeps, _ = _client()
    result = client.test_location(find_by_name("Seoul"))
    assert result.servers_attempted == 2
    names = sorted(isp.server_name for isp in result.isp_results)
    assert names == ["Near", "Only"]
    assert sleeps == [1]
    assert result.aggregated_stats.successful_isps == 2


def test_location_respects_max_isps(mock):
    mock.add(
        responses.GET,
        SERVERS_API_URL,
        json=[_server_entry(s) for s in ("Alpha Net", "Beta Net", "Gamma Net")],
    )
    _mock_server(mock)
    client, _, _ = _client(max_isps=1)
    result = client.test_location(find_by_name("Paris"))
    assert result.servers_attempted == 1
    assert len(result.isp_results) == 1


def test_location_all_isps_failed(mock):
    mock.add(responses.GET, SERVERS_API_URL, json=[_server_entry("Alpha Net")])
    _mock_server(mock, ping_status=500)
    client, _, _ = _client()
    result = client.test_location(find_by_name("Dubai"))
    assert not result.success
    assert result.error == "all ISPs failed"
    assert result.best_isp is None


def test_single_isp_ping_failure(mock):
    _mock_server(mock, ping_status=500)
    client, _, _ = _client()
    outcome = client.test_single_isp(SpeedtestServer.from_dict(_server_entry("Alpha Net")))
    assert not outcome.success
    assert outcome.error.startswith("ping failed:")
    assert outcome.isp == "Alpha Net"


def test_single_isp_download_failure(mock):
    _mock_server(mock, download_status=404)
    client, _, _ = _client()
    outcome = client.test_single_isp(SpeedtestServer.from_dict(_server_entry("Alpha Net")))
    assert not outcome.success
    assert outcome.error.startswith("download failed:")
    assert outcome.latency > 0


def test_single_isp_success_uses_several_threads(mock):
    _mock_server(mock)
    client, _, _ = _client(threads=3)
    outcome = client.test_single_isp(SpeedtestServer.from_dict(_server_entry("Alpha Net")))
    assert outcome.success
    assert outcome.jitter >= 0
    downloads = [c for c in mock.calls if c.request.url.endswith("random1000x1000.jpg")]
    assert len(downloads) >= 3


def test_get_user_info_parses_client_element(mock):
    mock.add(
        responses.GET,
        CONFIG_URL,
        body='<settings><client ip="192.0.2.1" lat="1.5" lon="2.5" isp="Example ISP"/></settings>',
    )
    client, _, _ = _client()
    info = client.get_user_info()
    assert (info.ip, info.lat, info.lon, info.isp) == ("192.0.2.1", "1.5", "2.5", "Example ISP")


def test_get_user_info_without_client_raises(mock):
    mock.add(responses.GET, CONFIG_URL, body="<settings></settings>")
    client, _, _ = _client()
    with pytest.raises(SpeedtestError):
        client.get_user_info()


def test_get_user_info_invalid_xml_raises(mock):
    mock.add(responses.GET, CONFIG_URL, body="not xml <<<")
    client, _, _ = _client()
    with pytest.raises(SpeedtestError):
        client.get_user_info()