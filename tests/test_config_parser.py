"""Brief: Unit tests for ndnsd.config.config_parser and config_schema.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

import pytest

from ndnsd.config import config_parser as cp
from ndnsd.config.config_schema import ServiceConfig, ZeroconfProviderConfig
from ndnsd.record import Proto


def test_defaults_when_no_file() -> None:
    cfg = cp.parse_config_file(None)
    assert cfg.logging == {}
    assert cfg.provider.interfaces == "default"
    assert cfg.provider.resolve_timeout_ms == 3000
    assert cfg.service.protocol == "udp"
    assert cfg.service.proto is Proto.UDP


def test_parse_config_file_reads_yaml(tmp_path) -> None:
    path = tmp_path / "ndnsd.yaml"
    path.write_text(
        "logging:\n"
        "  level: debug\n"
        "provider:\n"
        "  interfaces: 192.168.1.10\n"
        "  ip_version: IPv4\n"
        "service:\n"
        "  uuid: A\n"
        "  protocol: TCP\n"
        "  subtype: mfd\n"
        "  port: 45312\n"
        "  prefix: /test/prefix\n"
    )
    cfg = cp.parse_config_file(str(path))
    assert cfg.logging["level"] == "debug"
    assert cfg.provider.interfaces == ["192.168.1.10"]
    assert cfg.provider.ip_version == "v4"
    assert cfg.service.proto is Proto.TCP
    assert cfg.service.port == 45312


def test_overrides_win_over_file_values(tmp_path) -> None:
    path = tmp_path / "ndnsd.yaml"
    path.write_text("service:\n  uuid: A\n  port: 1\n")
    cfg = cp.parse_config_file(str(path), overrides={"service": {"port": 2, "prefix": "/o"}})
    assert cfg.service.uuid == "A"
    assert cfg.service.port == 2
    assert cfg.service.prefix == "/o"


def test_invalid_values_are_reported_with_location(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("service:\n  protocol: sctp\n  port: 70000\n")
    with pytest.raises(ValueError) as excinfo:
        cp.parse_config_file(str(path))
    text = str(excinfo.value)
    assert text.startswith(f"Invalid configuration in {path}:")
    assert "service.protocol" in text
    assert "service.port" in text


def test_non_mapping_root_is_rejected() -> None:
    with pytest.raises(ValueError, match="must be a mapping"):
        cp.load_config(["not", "a", "mapping"])  # type: ignore[arg-type]


def test_provider_normalization() -> None:
    assert ZeroconfProviderConfig(interfaces="ALL").interfaces == "all"
    assert ZeroconfProviderConfig(interfaces=None).interfaces == "default"
    assert ZeroconfProviderConfig(interfaces=[" 10.0.0.1 ", ""]).interfaces == ["10.0.0.1"]
    assert ZeroconfProviderConfig(ip_version="both").ip_version == "all"
    assert ZeroconfProviderConfig(ip_version="").ip_version is None
    with pytest.raises(ValueError):
        ZeroconfProviderConfig(ip_version="v5")


def test_service_protocol_default() -> None:
    assert ServiceConfig(protocol=None).protocol == "udp"


def test_read_certificate(tmp_path) -> None:
    cert = tmp_path / "cert.b64"
    cert.write_bytes(b"Bv0BfAc2CAR0ZXN0\n")
    assert cp.read_certificate(str(cert)) == b"Bv0BfAc2CAR0ZXN0"
    assert cp.read_certificate(None) == b""
    with pytest.raises(OSError):
        cp.read_certificate(str(tmp_path / "missing"))
