# intspeed

Measure network performance from your machine to cities around the world.

intspeed covers 17 locations across North America, Europe, Asia-Pacific,
the Middle East and South America. For each one it searches the speedtest
server list for servers in that city. It picks up to five different ISPs
(sponsors) at random and tests the closest server of each. Each test
measures latency and jitter with repeated HTTP requests. It then measures
download and upload throughput with parallel HTTP transfers. The locations
are tested one after another, so the results do not disturb each other.
For every location intspeed reports the best ISP and averages across all
ISPs. The best ISP is the one with the best combined score for low latency
and high bandwidth.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Command line

List the test locations, grouped by region:

```
intspeed locations
```

Run the full test. Results are written as indented JSON to the output
directory (`results/` by default), both as `results_<timestamp>.json` and
as `latest.json`:

```
intspeed test
intspeed test --html              # also write report_<timestamp>.html
intspeed test -t 4 --timeout 120  # threads per test, seconds per location
intspeed -o myresults -v test     # custom output directory, show your IP and ISP
```

Create an HTML report from a saved results file. The report is written
next to the JSON file, with the same name ending in `.html`. Without an
argument it uses `latest.json` in the output directory:

```
intspeed html
intspeed html results/results_2024-01-01_12-00-00.json
```

`intspeed --version` prints the version.

## Web server

Start an interactive page that runs the test and streams live progress and
results over a WebSocket at `/ws`:

```
intspeed-server --port 8080
```

Then open `http://localhost:8080` in your browser. Press Ctrl+C to stop the
server.

## Library use

```python
from intspeed.client import Config, SpeedtestClient
from intspeed.locations import find_by_name
from intspeed.report import generate_html
from intspeed.results import load

client = SpeedtestClient(Config(threads=2))
result = client.test_location(find_by_name("Frankfurt"))
print(result.success, result.latency, result.download_speed)

saved = load("results/latest.json")
stats = saved.get_stats()
print(f"{stats.successful}/{stats.total} locations, avg {stats.avg_latency:.1f} ms")
html = generate_html(saved)
```

The modules:

- `intspeed.locations`: the `Location` catalogue (`GLOBAL_LOCATIONS`),
  `get_by_region()`, `get_regions()` and `find_by_name()`.
- `intspeed.models`: the `ISPResult`, `AggregatedStats`, `Result`,
  `SpeedtestServer` and `UserInfo` records, and `calculate_aggregated_stats()`,
  `find_best_isp()` and `select_random_isps()`.
- `intspeed.client`: `Config`, `SpeedtestClient` and `SpeedtestError`.
- `intspeed.results`: `TestResults`, `Stats` and `load()`.
- `intspeed.report`: `generate_html()`.
- `intspeed.server`: `WebServer`, `run_server()` and `main()`.
- `intspeed.cli`: `run_test()`, `list_locations()`,
  `generate_html_report()` and `main()`.

## Limitations

- Packet loss is not measured. The `packet_loss_percent` field is always 0.
- Throughput is measured over plain HTTP against each server's upload
  endpoint and its `random1000x1000.jpg` file. The figures may differ from
  those of other speedtest tools.
- The HTML report and the interactive page load Tailwind CSS and Chart.js
  from public CDNs, so the browser needs internet access to show them
  styled and with charts.

## Running tests

```
pytest
```