"""International network performance testing: locations, client, results, reports, CLI and web server."""

__version__ = "2.0.0"