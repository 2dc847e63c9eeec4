"""Command-line interface: run the global test, list locations, render reports."""

from __future__ import annotations

import argparse
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Protocol, Sequence

from .client import Config, SpeedtestClient, SpeedtestError
from .locations import GLOBAL_LOCATIONS, Location, get_by_region, get_regions
from .models import Result, UserInfo
from .report import generate_html
from .results import TestResults, load

VERSION = "2.0.0"


class _Tester(Protocol):
    def get_user_info(self) -> UserInfo: ...

    def test_location(self, location: Location) -> Result: ...


def run_test(
    output_dir: str | Path,
    threads: int,
    timeout: int,
    verbose: bool,
    generate_html_report: bool,
) -> Path:
    """Test every location in turn, save the results and return the saved file."""
    client = SpeedtestClient(Config(threads=threads, timeout=float(timeout)))
    return _run_tests(
        output_dir,
        client,
        GLOBAL_LOCATIONS,
        timeout,
        verbose,
        generate_html_report,
    )


def _run_tests(
    output_dir: str | Path,
    client: _Tester,
    locations: Iterable[Location],
    timeout: int,
    verbose: bool,
    write_html: bool,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    places = tuple(locations)
    count = len(places)

    print(f"🌍 intspeed v{VERSION} from rotko.net")
    print(f"📍 Testing {count} locations sequentially for accurate results")
    print(f"⏱️  Estimated time: {count * timeout // 60} minutes")

    user_info: UserInfo | None = None
    try:
        user_info = client.get_user_info()
    except SpeedtestError as exc:
        print(f"warning: get user info: {exc}", file=sys.stderr)
    else:
        if verbose:
            print(
                f"📡 Your IP: {user_info.ip} ({user_info.isp}) [{user_info.lat}, {user_info.lon}]"
            )

    results = TestResults(
        user_info=user_info,
        timestamp=datetime.now().astimezone(),
        version=VERSION,
    )
    print()

    for number, location in enumerate(places, 1):
        print(f"🔍 [{number}/{count}] Testing {location.name}...")
        result = client.test_location(location)
        results.tests.append(result)

        if result.success and result.best_isp is not None:
            best = result.best_isp
            agg = result.aggregated_stats
            print(
                f"✅ [{number}/{count}] {location.name} "
                f"({agg.successful_isps}/{agg.total_isps} ISPs): "
                f"Best: {best.isp} {best.latency:.1f}ms "
                f"↓{best.download_speed:.1f}/↑{best.upload_speed:.1f} | "
                f"Avg: {agg.avg_latency:.1f}ms ↓{agg.avg_download:.1f}/↑{agg.avg_upload:.1f} Mbps"
            )
        else:
            print(
                f"❌ [{number}/{count}] {location.name}: {result.error} "
                f"({result.servers_attempted} ISPs tried)"
            )

        if number < count:
            sleep(2)

    results.sort_by_latency()

    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    filename = out / f"results_{stamp}.json"
    results.save(filename)
    try:
        results.save(out / "latest.json")
    except OSError:
        pass

    print(f"\n📊 Results saved: {filename}")

    stats = results.get_stats()
    print(f"✅ Success: {stats.successful}/{stats.total} ({stats.success_rate:.1f}%)")
    if stats.successful > 0:
        print(
            f"📊 Avg: {stats.avg_latency:.1f}ms, ↓{stats.avg_download:.1f} Mbps, "
            f"↑{stats.avg_upload:.1f} Mbps"
        )
        if stats.best_latency is not None:
            best = stats.best_latency
            print(
                f"🏆 Best latency: {best.location.name} → {best.server_city} "
                f"({best.latency:.1f}ms)"
            )
        if stats.best_download is not None:
            best = stats.best_download
            print(
                f"🏆 Best download: {best.location.name} → {best.server_city} "
                f"({best.download_speed:.1f} Mbps)"
            )

    if write_html:
        html_file = out / f"report_{stamp}.html"
        try:
            html_file.write_text(generate_html(results), encoding="utf-8")
        except OSError as exc:
            print(f"save HTML: {exc}", file=sys.stderr)
        else:
            print(f"📄 HTML report: {html_file}")

    return filename


def list_locations() -> None:
    """Print the test locations grouped by region."""
    print(f"🌍 Global Test Locations ({len(GLOBAL_LOCATIONS)} total)\n")
    regions = get_by_region()
    for region in get_regions():
        print(f"📍 {region}:")
        for loc in regions[region]:
            print(f"   • {loc.name} ({loc.country_code}) - {loc.description}")
        print()


def generate_html_report(filename: str | Path | None, output_dir: str | Path) -> Path:
    """Render saved results as HTML next to the JSON file and return the HTML path."""
    source = str(filename) if filename else str(Path(output_dir) / "latest.json")
    results = load(source)
    html_file = Path(source.removesuffix(".json") + ".html")
    html_file.write_text(generate_html(results), encoding="utf-8")
    print(f"📄 HTML report generated: {html_file}")
    return html_file


def _add_common_options(parser: argparse.ArgumentParser, *, with_defaults: bool) -> None:
    def default(value: object) -> object:
        return value if with_defaults else argparse.SUPPRESS

    parser.add_argument("-o", "--output", default=default("results"), help="Output directory")
    parser.add_argument("-t", "--threads", type=int, default=default(2), help="Threads per test")
    parser.add_argument(
        "--timeout", type=int, default=default(180), help="Timeout seconds per location"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=default(False), help="Verbose output"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intspeed", description="International network performance testing"
    )
    parser.add_argument("--version", action="version", version=f"intspeed version {VERSION}")
    _add_common_options(parser, with_defaults=True)

    common = argparse.ArgumentParser(add_help=False)
    _add_common_options(common, with_defaults=False)

    commands = parser.add_subparsers(dest="command")
    test = commands.add_parser("test", parents=[common], help="Run speed tests")
    test.add_argument("--html", action="store_true", help="Generate HTML report")
    commands.add_parser("locations", parents=[common], help="List test locations")
    html = commands.add_parser("html", parents=[common], help="Generate HTML from results")
    html.add_argument("results", nargs="?", default=None, metavar="results.json")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point; returns the process exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "test":
            run_test(args.output, args.threads, args.timeout, args.verbose, args.html)
        elif args.command == "locations":
            list_locations()
        elif args.command == "html":
            generate_html_report(args.results, args.output)
        else:
            parser.print_help()
    except (OSError, ValueError, TypeError, KeyError, SpeedtestError) as exc:
        print(f"intspeed: {exc}", file=sys.stderr)
        return 1
    return 0