"""Configuration parsing and normalization helpers for hybridradio.

Brief:
  This module contains the configuration-parsing utilities used by the CLI
  entrypoint. It centralizes:
    - reading YAML config files
    - merging variables from config/env/CLI
    - JSON Schema validation (including variable expansion performed by
      validate_config)
    - building the typed ResolverSettings model, including the override table

Inputs:
  - YAML config dicts and paths

Outputs:
  - Normalized config dicts and ResolverSettings instances
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional, Union

import yaml

from ..bearer_cache import load_override_table, validate_overrides
from .config_schema import validate_config
from .settings import ResolverSettings

logger = logging.getLogger(__name__)

_VAR_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")


def _parse_yaml_value(text: str) -> Any:
    """Parse a CLI/environment value as YAML, falling back to the raw string."""

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['vars'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['vars'].

    Precedence:
      - CLI (-v/--var) overrides environment overrides config-file variables.

    Notes:
      - The environment only overrides variables the config file declares, so
        unrelated variables such as PATH never leak into the config.

    Example:
      >>> cfg = {'vars': {'ZONE': 'radiodns.org.'}}
      >>> parse_config_variables(cfg, cli_vars=['ZONE=test.radiodns.org.'], environ={})['ZONE']
      'test.radiodns.org.'
    """

    base = cfg.get("vars", cfg.get("variables"))
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.vars must be a mapping when present")

    env = os.environ if environ is None else environ
    for k in list(merged):
        if isinstance(k, str) and k in env:
            merged[k] = _parse_yaml_value(str(env[k]))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -v/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _VAR_KEY.fullmatch(k):
            raise ValueError(
                "Invalid variable name %r (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
                % k
            )
        merged[k] = _parse_yaml_value(raw)

    cfg.pop("variables", None)
    if merged:
        cfg["vars"] = merged
    return merged


def parse_config_file(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Read, variable-merge, and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - cli_vars: Optional list of CLI `KEY=YAML` assignments (from -v/--var).
      - environ: Optional environment mapping used for variable overrides.

    Outputs:
      - dict: Validated configuration mapping.

    Raises:
      - OSError: the file cannot be read.
      - ValueError: schema validation fails or variables are invalid.
    """

    with open(config_path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    parse_config_variables(cfg, cli_vars=list(cli_vars or []), environ=environ)
    validate_config(cfg, config_path=config_path)
    return cfg


def parse_ecc(value: Union[int, str, None]) -> Optional[int]:
    """Brief: Interpret an Extended Country Code given as an int or hex text.

    Inputs:
      - value: e.g. 0xE1, 225, 'e1' or '0xE1'. None passes through.

    Outputs:
      - Optional[int]

    Raises:
      - ValueError: unparsable text.

    Example:
      >>> parse_ecc('e1')
      225
    """

    if value is None or isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    return int(text, 16)


def settings_from_config(
    cfg: Dict[str, Any], *, base_dir: Optional[str] = None
) -> ResolverSettings:
    """Brief: Build ResolverSettings from a validated configuration mapping.

    Inputs:
      - cfg: Mapping returned by parse_config_file() (or an equivalent dict).
      - base_dir: Directory relative paths (override_file, audit_log) are
        resolved against; defaults to the current directory.

    Outputs:
      - ResolverSettings instance.

    Notes:
      - Entries from override_file are loaded first; inline `overrides` win on
        conflicting keys.
    """

    def _section(name: str) -> Dict[str, Any]:
        value = cfg.get(name)
        return value if isinstance(value, dict) else {}

    def _path(value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        expanded = os.path.expanduser(value)
        if base_dir and not os.path.isabs(expanded):
            return os.path.join(base_dir, expanded)
        return expanded

    radiodns = _section("radiodns")
    streams = _section("streams")
    receiver = _section("receiver")
    connectivity = _section("connectivity")

    overrides: Dict[str, str] = {}
    override_file = _path(cfg.get("override_file"))
    if override_file:
        overrides.update(load_override_table(override_file))
        logger.debug("Loaded %d URL overrides from %s", len(overrides), override_file)
    overrides.update(validate_overrides(_section("overrides")))

    values: Dict[str, Any] = {
        "overrides": overrides,
        "ecc": parse_ecc(receiver.get("ecc")),
        "bearers": list(receiver.get("bearers") or []),
    }
    for key in (
        "primary_zone",
        "test_zone",
        "application",
        "dns_timeout",
        "nameservers",
        "max_concurrent_fetches",
    ):
        if key in radiodns:
            values[key] = radiodns[key]
    if "timeout" in streams:
        values["stream_timeout"] = streams["timeout"]
    for key in ("max_depth", "max_playlist_bytes"):
        if key in streams:
            values[key] = streams[key]
    if "audit_log" in streams:
        values["audit_log"] = _path(streams["audit_log"])
    for key in ("enabled", "url", "expected", "timeout"):
        if key in connectivity:
            values[f"connectivity_{key}"] = connectivity[key]

    return ResolverSettings(**values)
