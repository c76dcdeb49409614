#!/usr/bin/env python3
"""
Nearest-location query runner.

Usage:
    python run_query.py
    python run_query.py --data data/locations.csv --lat 51.5074 --lon -0.1278
    python run_query.py --config configs/paris.json --verify --stats

The config JSON may set:
  - data            path or http(s) URL of the label,lat,lon records
  - query           {"lat": ..., "lon": ...}
  - pruning         "approximate" | "spherical"
  - validate_ranges reject out-of-range coordinates while loading
  - outputs         {"geojson": path, "html": path}

Command-line flags override config values.
"""

from __future__ import annotations

import argparse
import json
import math
import sys

from geonear.distance import brute_force_nearest
from geonear.kd_tree import PRUNING_MODES, KDTree, Point
from geonear.loader import load_locations
from geonear.output_writers import write_geojson, write_html_map


DEFAULT_DATA_PATH = "data/locations.csv"
DEFAULT_QUERY = {"lat": 48.8566, "lon": 2.3522}  # Paris


# ============================================================================
# Configuration
# ============================================================================

def load_config(path: str | None) -> dict:
    if path is None:
        return {}
    with open(path) as f:
        cfg = json.load(f)
    if not isinstance(cfg, dict):
        raise ValueError(f"Config {path} must hold a JSON object")
    return cfg


def resolve_settings(args: argparse.Namespace, cfg: dict) -> dict:
    """Merge CLI flags over config values over defaults."""
    query = dict(DEFAULT_QUERY)
    query.update(cfg.get("query", {}))
    if args.lat is not None:
        query["lat"] = args.lat
    if args.lon is not None:
        query["lon"] = args.lon

    outputs = dict(cfg.get("outputs", {}))
    if args.geojson:
        outputs["geojson"] = args.geojson
    if args.html:
        outputs["html"] = args.html

    lat, lon = float(query["lat"]), float(query["lon"])
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValueError(f"Query coordinates must be finite, got ({lat}, {lon})")

    pruning = args.pruning or cfg.get("pruning", "approximate")
    if pruning not in PRUNING_MODES:
        raise ValueError(
            f"Unknown pruning mode: '{pruning}'. Choose from: {list(PRUNING_MODES)}"
        )

    return {
        "data": args.data or cfg.get("data", DEFAULT_DATA_PATH),
        "query": Point("", lat, lon),
        "pruning": pruning,
        "validate_ranges": args.validate_ranges or bool(cfg.get("validate_ranges", False)),
        "outputs": outputs,
        "verify": args.verify,
        "stats": args.stats,
    }


# ============================================================================
# Main pipeline
# ============================================================================

def run(settings: dict) -> int:
    # 1) Load points
    locations = load_locations(settings["data"], validate_ranges=settings["validate_ranges"])
    if not locations:
        print("ERROR: Could not load location data.", file=sys.stderr)
        return 1

    # 2) Build the index once
    tree = KDTree(locations, pruning=settings["pruning"])

    # 3) One query
    query = settings["query"]
    result = tree.nearest_with_stats(query)
    print(f"The nearest location to ({query.latitude}, {query.longitude}) "
          f"is: {result.point.label}")

    if settings["stats"]:
        print(f"  Distance:      {result.distance_km:.3f} km")
        print(f"  Nodes visited: {result.nodes_visited} / {len(tree)}")
        print(f"  Tree height:   {tree.height()}")

    if settings["verify"]:
        expected, expected_km = brute_force_nearest(query, locations)
        if expected_km < result.distance_km - 1e-9:
            print(f"WARNING: linear scan found {expected.label} at {expected_km:.3f} km, "
                  f"closer than {result.point.label} at {result.distance_km:.3f} km "
                  f"(pruning='{settings['pruning']}')", file=sys.stderr)

    # 4) Optional outputs
    outputs = settings["outputs"]
    if outputs.get("geojson"):
        write_geojson(query, result, outputs["geojson"])
    if outputs.get("html"):
        write_html_map(query, result, outputs["html"],
                       title=f"Nearest to ({query.latitude}, {query.longitude})")

    return 0


# ============================================================================
# CLI entry point
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Find the known location closest to a query point."
    )
    parser.add_argument("--config", help="Path to a JSON configuration file.")
    parser.add_argument("--data", help="Path or http(s) URL of label,lat,lon records.")
    parser.add_argument("--lat", type=float, help="Query latitude in degrees.")
    parser.add_argument("--lon", type=float, help="Query longitude in degrees.")
    parser.add_argument("--pruning", choices=PRUNING_MODES,
                        help="Far-branch pruning bound (default: approximate).")
    parser.add_argument("--validate-ranges", action="store_true",
                        help="Skip records with latitude/longitude out of range.")
    parser.add_argument("--verify", action="store_true",
                        help="Cross-check the answer with a linear scan.")
    parser.add_argument("--stats", action="store_true",
                        help="Print distance and search statistics.")
    parser.add_argument("--geojson", help="Write the result as GeoJSON to this path.")
    parser.add_argument("--html", help="Write an interactive map to this path.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = resolve_settings(args, load_config(args.config))
    except (OSError, ValueError, KeyError) as exc:
        parser.error(str(exc))
    return run(settings)


if __name__ == "__main__":
    sys.exit(main())
