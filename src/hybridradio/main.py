from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from .bearer import bearer_to_fqdn, normalize_scan_bearers
from .broadcast import BroadcastResolver, select_available
from .config.config_parser import parse_config_file, settings_from_config
from .config.logging_config import init_logging
from .config.settings import ResolverSettings
from .connectivity import check_connectivity
from .errors import ConnectivityError, RadioDnsError, StreamExpansionError

logger = logging.getLogger("hybridradio.main")

DEFAULT_CONFIG_PATH = "./config/config.yaml"

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_CONNECTIVITY = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hybridradio",
        description="RadioDNS hybrid radio resolution: map streams to broadcast bearers",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help=f"Path to YAML config (default: {DEFAULT_CONFIG_PATH} when present)",
    )
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Override a config variable (repeatable)",
    )
    parser.add_argument(
        "--ecc",
        default=None,
        help="Receiver Extended Country Code in hex, used to complete fm:*. bearers",
    )
    parser.add_argument(
        "--skip-connectivity",
        action="store_true",
        help="Do not probe IP connectivity before talking to RadioDNS",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p_fqdn = sub.add_parser("fqdn", help="Print the RadioDNS lookup names for a bearer")
    p_fqdn.add_argument("bearer")

    p_cache = sub.add_parser("cache", help="Resolve bearers and print the resulting cache")
    p_cache.add_argument(
        "bearers",
        nargs="*",
        help="Bearers to resolve (default: receiver.bearers from the config)",
    )

    p_lookup = sub.add_parser("lookup", help="Find broadcast bearers for a stream URL")
    p_lookup.add_argument("url")
    p_lookup.add_argument(
        "--cache",
        dest="cache_bearers",
        nargs="*",
        default=None,
        help="Bearers to resolve first (default: receiver.bearers from the config)",
    )
    p_lookup.add_argument(
        "--available",
        nargs="*",
        default=None,
        help="Bearers the tuner can receive (default: the cached bearers)",
    )
    return parser


def _load_config(path: Optional[str], cli_vars: List[str]) -> tuple[Dict[str, Any], Optional[str]]:
    if path is None:
        if not os.path.isfile(DEFAULT_CONFIG_PATH):
            return {}, None
        path = DEFAULT_CONFIG_PATH
    cfg = parse_config_file(path, cli_vars=cli_vars)
    return cfg, os.path.dirname(os.path.abspath(path))


def _probe(settings: ResolverSettings, skip: bool) -> None:
    if skip or not settings.connectivity_enabled:
        return
    logger.debug("Checking for IP connectivity")
    check_connectivity(
        settings.connectivity_url,
        settings.connectivity_expected,
        timeout=settings.connectivity_timeout,
    )


def _scan_bearers(explicit: Optional[List[str]], settings: ResolverSettings) -> List[str]:
    raw = explicit if explicit else settings.bearers
    bearers = normalize_scan_bearers(raw, settings.ecc)
    dropped = len(raw) - len(bearers)
    if dropped:
        logger.warning(
            "Ignoring %d invalid or unresolved wildcard bearers (is the ECC configured?)",
            dropped,
        )
    return bearers


def main(argv: List[str] | None = None) -> int:
    """
    Brief: Command line entry point.

    Inputs:
      - argv: Argument list without the program name (defaults to sys.argv[1:]).

    Outputs:
      - int exit code: 0 success, 1 configuration error, 2 connectivity failure.
    """

    args = build_parser().parse_args(argv)

    try:
        cfg, base_dir = _load_config(args.config, args.var)
        init_logging(cfg.get("logging"))
        if args.ecc is not None:
            receiver = cfg.get("receiver") or {}
            receiver["ecc"] = args.ecc
            cfg["receiver"] = receiver
        settings = settings_from_config(cfg, base_dir=base_dir)
    except (OSError, ValueError) as exc:
        logging.basicConfig()
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG

    if args.command == "fqdn":
        try:
            for zone in (settings.primary_zone, settings.test_zone):
                print(bearer_to_fqdn(args.bearer, zone))
        except RadioDnsError as exc:
            logger.error("%s", exc)
            return EXIT_CONFIG
        return EXIT_OK

    try:
        _probe(settings, args.skip_connectivity)
    except ConnectivityError as exc:
        logger.error("Unable to verify IP connectivity: %s", exc)
        return EXIT_CONNECTIVITY

    resolver = BroadcastResolver.from_settings(settings)

    if args.command == "cache":
        bearers = _scan_bearers(args.bearers, settings)
        logger.info("Caching hybrid radio metadata for %d bearers", len(bearers))
        outcomes = resolver.cache_bearers(bearers)
        report = {
            "outcomes": [
                {
                    "bearer": o.bearer,
                    "status": o.status,
                    "error": str(o.error) if o.error else None,
                }
                for o in outcomes
            ],
            "cache": resolver.cache.snapshot(),
        }
        print(json.dumps(report, indent=2, sort_keys=True))
        return EXIT_OK

    bearers = _scan_bearers(args.cache_bearers, settings)
    resolver.cache_bearers(bearers)
    try:
        candidates = resolver.get_broadcast_bearers(args.url)
    except StreamExpansionError as exc:
        logger.warning("No broadcast alternative for %s: %s", args.url, exc)
        candidates = []
    available = (
        normalize_scan_bearers(args.available, settings.ecc)
        if args.available is not None
        else bearers
    )
    chosen = select_available(candidates, available)
    logger.info(
        "Found %d broadcast bearers, of which %d are available",
        len(candidates),
        len(chosen),
    )
    print(
        json.dumps(
            {"url": args.url, "candidates": candidates, "available": chosen},
            indent=2,
        )
    )
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
