"""Configuration parsing helpers for ndnsd.

Brief:
  Reads the YAML configuration used by the CLI, merges command-line
  overrides and validates the result into an NdnSdConfig.

Inputs:
  - YAML config file paths and override mappings.

Outputs:
  - Validated NdnSdConfig instances.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .config_schema import NdnSdConfig


def _format_errors(exc: ValidationError, *, config_path: Optional[str]) -> str:
    """Brief: Format pydantic validation errors into a human-readable string.

    Inputs:
      - exc: ValidationError raised by NdnSdConfig.
      - config_path: Optional path of the file being validated.

    Outputs:
      - str: One line per error, prefixed with the dotted field location.
    """

    where = f" in {config_path}" if config_path else ""
    lines = [f"Invalid configuration{where}:"]
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        lines.append(f"  - {loc}: {err.get('msg', 'invalid value')}")
    return "\n".join(lines)


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        elif value is not None:
            merged[key] = value
    return merged


def load_config(
    cfg: Optional[Dict[str, Any]],
    *,
    overrides: Optional[Dict[str, Any]] = None,
    config_path: Optional[str] = None,
) -> NdnSdConfig:
    """Brief: Validate a configuration mapping.

    Inputs:
      - cfg: Parsed YAML mapping (None means defaults).
      - overrides: Optional nested mapping whose non-None values win over cfg.
      - config_path: Optional source path used in error messages.

    Outputs:
      - NdnSdConfig.

    Raises:
      - ValueError: When the configuration does not validate.
    """

    raw = cfg or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration root must be a mapping")
    if overrides:
        raw = _merge(raw, overrides)
    try:
        return NdnSdConfig(**raw)
    except ValidationError as exc:
        raise ValueError(_format_errors(exc, config_path=config_path)) from exc


def parse_config_file(
    config_path: Optional[str],
    *,
    overrides: Optional[Dict[str, Any]] = None,
) -> NdnSdConfig:
    """Brief: Read and validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file, or None for defaults.
      - overrides: Optional nested mapping of command-line overrides.

    Outputs:
      - NdnSdConfig.

    Raises:
      - ValueError: When the file is not a mapping or fails validation.
      - OSError: When the file cannot be read.
    """

    cfg: Dict[str, Any] = {}
    if config_path:
        path = os.path.abspath(os.path.expanduser(config_path))
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    return load_config(cfg, overrides=overrides, config_path=config_path)


def read_certificate(path: Optional[str]) -> bytes:
    """Brief: Read an advertised certificate from disk.

    Inputs:
      - path: File path or None.

    Outputs:
      - bytes: File contents with surrounding whitespace stripped; b"" when
        no path is configured.
    """

    if not path:
        return b""
    with open(os.path.expanduser(path), "rb") as f:
        return f.read().strip()
