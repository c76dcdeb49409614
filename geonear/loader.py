"""Location loading: ``label,latitude,longitude`` records from a file or URL."""

from __future__ import annotations

import math
import sys
import time
from typing import Iterable, Optional

import requests

from geonear.kd_tree import Point


# ── HTTP with retry ───────────────────────────────────────────────────

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


def get_text(url: str, timeout: int = 60, max_retries: int = 3) -> str:
    """GET request with exponential backoff retry."""
    for attempt in range(max_retries + 1):
        try:
            r = requests.get(url, timeout=timeout)
        except requests.exceptions.RequestException:
            if attempt == max_retries:
                raise
            time.sleep(2 ** (attempt + 1))
            continue
        if r.status_code == 200:
            return r.text
        if r.status_code in RETRY_STATUS_CODES and attempt < max_retries:
            time.sleep(2 ** (attempt + 1))
            continue
        # Other 4xx responses fail at once.
        r.raise_for_status()
    raise RuntimeError(f"Max retries exceeded for {url}")


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def read_source(source: str) -> Optional[list[str]]:
    """
    Read the raw lines of *source* (path or http(s) URL).

    Returns ``None`` and prints an error when the source cannot be read.
    """
    try:
        if _is_url(source):
            return get_text(source).splitlines()
        with open(source, encoding="utf-8") as f:
            return f.read().splitlines()
    except (OSError, UnicodeDecodeError, requests.exceptions.RequestException, RuntimeError) as exc:
        print(f"ERROR: could not read location source {source}: {exc}", file=sys.stderr)
        return None


# ── Record parsing ────────────────────────────────────────────────────

def _parse_coordinate(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"coordinate must be finite, got {text!r}")
    return value


def parse_record(line: str, validate_ranges: bool = False) -> Point:
    """Parse one ``label,lat,lon`` line.  Raises ValueError when malformed."""
    fields = line.split(",")
    if len(fields) != 3:
        raise ValueError(f"expected 3 comma-separated fields, got {len(fields)}")
    label, lat_str, lon_str = (f.strip() for f in fields)
    lat = _parse_coordinate(lat_str)
    lon = _parse_coordinate(lon_str)
    if validate_ranges:
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"latitude {lat} outside [-90, 90]")
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"longitude {lon} outside [-180, 180]")
    return Point(label, lat, lon)


def parse_locations(lines: Iterable[str], validate_ranges: bool = False) -> list[Point]:
    """
    Parse location records, skipping malformed lines.

    Blank lines are ignored.  Every other line that fails to parse is
    reported on stderr with its line number; the rest keep their order.
    """
    points: list[Point] = []
    for lineno, line in enumerate(lines, start=1):
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        try:
            points.append(parse_record(line, validate_ranges=validate_ranges))
        except ValueError as exc:
            print(f"WARNING: skipping line {lineno}: {line!r} -> {exc}", file=sys.stderr)
    return points


def load_locations(source: str, validate_ranges: bool = False) -> list[Point]:
    """Load locations from *source*; an unreadable source yields ``[]``."""
    lines = read_source(source)
    if lines is None:
        return []
    return parse_locations(lines, validate_ranges=validate_ranges)
