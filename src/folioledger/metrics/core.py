"""Expose the ledger metrics over HTTP for Prometheus to scrape."""

import logging
import os
from typing import Optional

from prometheus_client import start_http_server

log = logging.getLogger(__name__)


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> Optional[int]:
    """Serve /metrics on ``addr:port``; returns the port, or None when skipped.

    DISABLE_PROMETHEUS=1 skips the exporter entirely. A port that is already
    bound only produces a warning so the CLI command still runs.
    """
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        return None
    try:
        start_http_server(port, addr=addr)
    except OSError as e:
        log.warning(f"metrics exporter not started on {addr}:{port}: {e}")
        return None
    log.info(f"metrics exporter listening on {addr}:{port}")
    return port
