"""Static HTML report of a finished run."""

from __future__ import annotations

import json
from typing import Any

from .results import TestResults

_CDN_SCRIPTS = ("https://cdn.tailwindcss.com", "https://cdn.jsdelivr.net/npm/chart.js")
_TITLE = "International Speedtest Results"
_COLUMNS = ("Location", "Latency", "Download", "Upload", "Status")
_TH_CLASS = "px-6 py-3 text-left text-xs font-medium text-gray-500 uppercase tracking-wider"
_PANEL = "bg-white rounded-lg p-6 shadow"

_REPORT_SCRIPT = """const fmt = (test, key, unit) => test.success ? test[key].toFixed(1) + unit : 'N/A';
const cell = (html, extra) => '<td class="px-6 py-4 whitespace-nowrap' + (extra ? ' ' + extra : '') + '">' + html + '</td>';
const numeric = 'text-sm text-gray-900';
const badgeBase = 'px-2 inline-flex text-xs leading-5 font-semibold rounded-full ';
const tableBody = document.getElementById('resultsTableBody');
for (const test of testData) {
  const badge = test.success
    ? '<span class="' + badgeBase + 'bg-green-100 text-green-800">Success</span>'
    : '<span class="' + badgeBase + 'bg-red-100 text-red-800">Failed</span>';
  tableBody.insertRow().innerHTML =
    cell('<div class="text-sm font-medium text-gray-900">' + test.location.name +
         '</div><div class="text-sm text-gray-500">' + test.location.region + '</div>') +
    cell(fmt(test, 'latency_ms', ' ms'), numeric) +
    cell(fmt(test, 'download_mbps', ' Mbps'), numeric) +
    cell(fmt(test, 'upload_mbps', ' Mbps'), numeric) +
    cell(badge);
}
const passed = testData.filter(t => t.success);
const labels = passed.map(t => t.location.name);
const axes = () => ({responsive: true, scales: {x: {ticks: {maxRotation: 45}}, y: {beginAtZero: true}}});
const series = (label, key, style) => Object.assign({label: label, data: passed.map(t => t[key])}, style);
const draw = (id, type, datasets) =>
  new Chart(document.getElementById(id).getContext('2d'),
            {type: type, data: {labels: labels, datasets: datasets}, options: axes()});
draw('speedChart', 'bar', [
  series('Download (Mbps)', 'download_mbps', {backgroundColor: 'rgba(59, 130, 246, 0.7)'}),
  series('Upload (Mbps)', 'upload_mbps', {backgroundColor: 'rgba(245, 158, 11, 0.7)'}),
]);
draw('latencyChart', 'line', [
  series('Latency (ms)', 'latency_ms',
         {borderColor: 'rgba(16, 185, 129, 1)', backgroundColor: 'rgba(16, 185, 129, 0.1)', tension: 0.4}),
]);
"""

_SCRIPT_ESCAPES = str.maketrans(
    {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}
)


def _script_json(value: Any) -> str:
    """Compact JSON that is safe to embed inside a script element."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).translate(_SCRIPT_ESCAPES)


def _head() -> str:
    scripts = "".join(f'<script src="{src}"></script>' for src in _CDN_SCRIPTS)
    return (
        '<head><meta charset="UTF-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">'
        f"<title>{_TITLE}</title>{scripts}</head>"
    )


def _card(value: str, label: str, colour: str, note: str = "") -> str:
    extra = f'<div class="text-sm text-gray-500">{note}</div>' if note else ""
    return (
        f'<div class="{_PANEL}"><div class="text-2xl font-bold text-{colour}-600">{value}</div>'
        f'<div class="text-gray-600">{label}</div>{extra}</div>'
    )


def _chart_panel(title: str, canvas_id: str) -> str:
    return (
        f'<div class="{_PANEL}"><h3 class="text-xl font-semibold mb-4">{title}</h3>'
        f'<canvas id="{canvas_id}" width="400" height="200"></canvas></div>'
    )


def _table() -> str:
    headers = "".join(f'<th class="{_TH_CLASS}">{name}</th>' for name in _COLUMNS)
    return (
        '<div class="bg-white rounded-lg shadow overflow-hidden">'
        '<div class="px-6 py-4 border-b"><h3 class="text-xl font-semibold">Detailed Results</h3></div>'
        '<div class="overflow-x-auto"><table class="w-full">'
        f'<thead class="bg-gray-50"><tr>{headers}</tr></thead>'
        '<tbody class="bg-white divide-y divide-gray-200" id="resultsTableBody"></tbody>'
        "</table></div></div>"
    )


def generate_html(test_results: TestResults) -> str:
    """Render a self-contained HTML page with summary figures, charts and a table."""
    stats = test_results.get_stats()
    tests_json = _script_json([test.to_dict() for test in test_results.tests])
    stats_json = _script_json(stats.to_dict())

    cards = "".join(
        (
            _card(
                f"{stats.successful}/{stats.total}",
                "Success Rate",
                "blue",
                f"{stats.success_rate:.1f}%",
            ),
            _card(f"{stats.avg_latency:.1f} ms", "Avg Latency", "green"),
            _card(f"{stats.avg_download:.1f} Mbps", "Avg Download", "purple"),
            _card(f"{stats.avg_upload:.1f} Mbps", "Avg Upload", "orange"),
        )
    )
    charts = _chart_panel("Speed by Location", "speedChart") + _chart_panel(
        "Latency Distribution", "latencyChart"
    )
    sections = [
        '<div class="bg-white rounded-lg shadow-lg p-6 mb-8">'
        '<h1 class="text-4xl font-bold text-gray-800 mb-2">🌍 intspeed results</h1>'
        '<p class="text-gray-600">Global network performance analysis</p></div>',
        f'<div class="grid grid-cols-1 md:grid-cols-2 lg:grid-cols-4 gap-6 mb-8">{cards}</div>',
        f'<div class="grid grid-cols-1 lg:grid-cols-2 gap-8 mb-8">{charts}</div>',
        _table(),
    ]
    script = "const testData = " + tests_json + ";\nconst stats = " + stats_json + ";\n" + _REPORT_SCRIPT
    return "\n".join(
        (
            "<!DOCTYPE html>",
            '<html lang="en">',
            _head(),
            '<body class="bg-gray-50 min-h-screen">',
            '<div class="container mx-auto px-4 py-8">',
            *sections,
            "</div>",
            "<script>",
            script,
            "</script>",
            "</body>",
            "</html>",
        )
    )