"""JSON Schema-based validation for hybridradio YAML configuration.

The schema ships inside the package as ``config/config-schema.json`` so that
installed copies validate exactly like a source checkout.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator, ValidationError
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)

_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")
_VAR_NAME = re.compile(r"[A-Z_][A-Z0-9_]*")


def _expand_variables(cfg: Dict[str, Any]) -> None:
    """Brief: Expand the top-level `vars` mapping into the config and drop it.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - A string that is exactly `$KEY` or `${KEY}` is replaced by the variable's
        YAML value (list/dict/int/etc.); a list item injected this way is
        spliced into the surrounding list.
      - `${KEY}` inside a longer string is substituted textually.
      - Unknown `${KEY}` references are left untouched.
      - Variables may refer to other variables; cycles raise ValueError.
    """

    variables = cfg.get("vars")
    if variables is None and "variables" in cfg:
        variables = cfg.pop("variables")
        cfg["vars"] = variables
    if variables is None:
        return
    if not isinstance(variables, dict):
        raise ValueError("config.vars must be a mapping when present")

    for k in variables:
        if not isinstance(k, str) or not _VAR_NAME.fullmatch(k):
            raise ValueError(
                f"config.vars key {k!r} must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*"
            )

    resolved: Dict[str, Any] = {}

    def _resolve_var(key: str, stack: List[str]) -> Any:
        if key in resolved:
            return resolved[key]
        if key in stack:
            raise ValueError(
                "config.vars contains a cycle: " + " -> ".join(stack + [key])
            )
        value = _expand_obj(variables[key], stack + [key])
        resolved[key] = value
        return value

    def _whole_node_name(text: str) -> Optional[str]:
        if text.startswith("${") and text.endswith("}") and text[2:-1] in variables:
            return text[2:-1]
        if text.startswith("$") and text[1:] in variables:
            return text[1:]
        return None

    def _scalar_text(v: Any) -> str:
        if isinstance(v, bool):
            return "true" if v else "false"
        if v is None:
            return "null"
        if isinstance(v, (int, float, str)):
            return str(v)
        return json.dumps(v)

    def _expand_string(text: str, stack: List[str]) -> Any:
        name = _whole_node_name(text)
        if name is not None:
            return copy.deepcopy(_resolve_var(name, stack))

        def _repl(match: re.Match[str]) -> str:
            k = match.group(1)
            if k not in variables:
                return match.group(0)
            return _scalar_text(_resolve_var(k, stack))

        return _VAR_PATTERN.sub(_repl, text)

    def _expand_obj(obj: Any, stack: List[str]) -> Any:
        if isinstance(obj, str):
            return _expand_string(obj, stack)
        if isinstance(obj, list):
            out: List[Any] = []
            for item in obj:
                expanded = _expand_obj(item, stack)
                if (
                    isinstance(item, str)
                    and _whole_node_name(item) is not None
                    and isinstance(expanded, list)
                ):
                    out.extend(expanded)
                else:
                    out.append(expanded)
            return out
        if isinstance(obj, dict):
            return {k: _expand_obj(v, stack) for k, v in obj.items()}
        return obj

    for k in list(variables):
        _resolve_var(k, [])

    for top_key in list(cfg):
        if top_key == "vars":
            continue
        cfg[top_key] = _expand_obj(cfg[top_key], [])
    cfg.pop("vars", None)


def _normalize_sections(cfg: Dict[str, Any]) -> None:
    """Treat explicit nulls for mapping sections (`radiodns:` with no body) as empty."""

    for key in ("logging", "radiodns", "streams", "overrides", "receiver", "connectivity"):
        if key in cfg and cfg[key] is None:
            cfg[key] = {}


def get_default_schema_path() -> Path:
    return Path(__file__).resolve().parent / "config-schema.json"


def _load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    path = schema_path or get_default_schema_path()
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.
      - config_path: Optional path to the YAML config being validated.

    Outputs:
      - String suitable for display in logs or CLI output.
    """

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def _split_extra_property_errors(
    errors: List[ValidationError],
) -> Tuple[List[ValidationError], List[ValidationError]]:
    extra: List[ValidationError] = []
    other: List[ValidationError] = []
    for err in errors:
        if err.validator in {"additionalProperties", "unevaluatedProperties"}:
            extra.append(err)
        else:
            other.append(err)
    return extra, other


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = "./config/config.yaml",
    unknown_keys: str = "warn",
) -> None:
    """Brief: Normalise and validate a parsed YAML configuration mapping.

    Inputs:
      - cfg: Dict loaded from YAML (mutated: variables expanded, null sections
        replaced with empty mappings).
      - schema_path: Optional explicit path to a JSON Schema file.
      - config_path: Path of the YAML file, used only in error messages.
      - unknown_keys: 'ignore', 'warn' (default) or 'error' for keys the schema
        does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: any non-extra-property validation error, or extra-property
        errors when unknown_keys is 'error'.

    Example:
      >>> import yaml
      >>> validate_config(yaml.safe_load("radiodns: {dns_timeout: 2.5}"))
    """

    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    _expand_variables(cfg)
    _normalize_sections(cfg)

    effective_schema_path = schema_path or get_default_schema_path()
    try:
        schema = _load_schema(effective_schema_path)
        validator = Draft202012Validator(schema)
    except (OSError, json.JSONDecodeError, SchemaError) as exc:
        raise ValueError(
            f"Failed to load configuration schema at {effective_schema_path}: {exc}"
        ) from exc

    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: [str(p) for p in e.path])
    if not all_errors:
        return None

    extra_errors, other_errors = _split_extra_property_errors(all_errors)
    if other_errors:
        raise ValueError(
            _format_errors(other_errors + extra_errors, config_path=config_path)
        )

    message = _format_errors(extra_errors, config_path=config_path)
    if unknown_keys == "ignore":
        return None
    if unknown_keys == "warn":
        logger.warning(message)
        return None
    raise ValueError(message)
