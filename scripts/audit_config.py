#!/usr/bin/env python3
# audit_config.py
#
# ODEA Krino - Auth audit configuration
#
# Defaults below, optionally overridden by a JSON file (--config), then by CLI
# flags. The WinRM password is never part of the config; it is asked for with
# getpass at run time.
#
# Example config.json:
#   {
#     "host": "10.0.0.5",
#     "username": "CORP\\auditor",
#     "archive_dir": "D:\\EventArchive",
#     "readable_status": true
#   }

import dataclasses
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from evtx_source import DEFAULT_ARCHIVE_DIR
from exporter import FORMATS
from processor import MISSING_STATUS_POLICIES
from query_builder import SetupError

DEFAULT_OUTPUT_ROOT = "~/odea_krino/evidence/auth_audit"


class ConfigError(SetupError):
    pass


@dataclass
class AuditConfig:
    host: str = ""
    port: int = 5985
    transport: str = "ntlm"
    username: str = ""
    server_cert_validation: str = "ignore"
    local: bool = False
    archive_dir: str = DEFAULT_ARCHIVE_DIR
    output_root: str = DEFAULT_OUTPUT_ROOT
    export_format: str = "csv"
    readable_status: bool = False
    missing_status: str = "include"

    def validate(self) -> "AuditConfig":
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            # bool is an int subclass; a JSON true is not a port
            if not isinstance(value, f.type) or (f.type is int and isinstance(value, bool)):
                raise ConfigError(f"{f.name} must be {f.type.__name__}, got {value!r}")
        if self.export_format not in FORMATS:
            raise ConfigError(f"export_format must be one of {FORMATS}, got {self.export_format!r}")
        if self.missing_status not in MISSING_STATUS_POLICIES:
            raise ConfigError(
                f"missing_status must be one of {MISSING_STATUS_POLICIES}, got {self.missing_status!r}"
            )
        if not 0 < self.port < 65536:
            raise ConfigError(f"invalid port: {self.port!r}")
        if not self.local and not self.host:
            raise ConfigError("no target host configured (use --host or --local)")
        return self


def config_from_dict(obj: Dict[str, Any], base: Optional[AuditConfig] = None) -> AuditConfig:
    if not isinstance(obj, dict):
        raise ConfigError("config root must be a JSON object")
    known = {f.name for f in dataclasses.fields(AuditConfig)}
    unknown = sorted(set(obj) - known)
    if unknown:
        raise ConfigError(f"unknown config key(s): {', '.join(unknown)}")
    return dataclasses.replace(base or AuditConfig(), **obj)


def load_config(path: Optional[str]) -> AuditConfig:
    if not path:
        return AuditConfig()
    p = os.path.expanduser(path)
    try:
        with open(p, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot load config {p}: {e}") from None
    return config_from_dict(obj)


def apply_overrides(config: AuditConfig, **overrides: Any) -> AuditConfig:
    """CLI flags left at None do not override."""
    changes = {k: v for k, v in overrides.items() if v is not None}
    return config_from_dict(changes, base=config)
