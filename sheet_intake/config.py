"""
config.py — Scan options and the JSON scan-config file.

Example config:

    {
      "schema": [{"name": "sku", "kind": "string"},
                 {"name": "qty", "kind": "int"},
                 {"name": "extras", "kind": "extra"}],
      "skip_rows": 2,
      "max_rows": 20000,
      "unique_columns": [0],
      "write_back_mode": "any-row",
      "progress_interval": 100,
      "required": ["sku"],
      "header_rules": {
        "fixed_columns": 2,
        "allowed_start": [],
        "allowed_end": ["price_eu"],
        "groups": [{"values": ["name_en", {"value": "price_eu", "repeating": true}],
                    "repeating": true}]
      }
    }
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from sheet_intake.errors import ConfigError
from sheet_intake.grouping import WriteBackMode
from sheet_intake.header_rules import HeaderRule, HeaderRuleGroup, HeaderRuleValidator
from sheet_intake.schema import SchemaDescriptor

DEFAULT_SKIP_ROW_COUNT = 2
DEFAULT_PROGRESS_INTERVAL = 100
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}

OUTPUT_STAMP_ENV = "SHEET_INTAKE_OUTPUT_STAMP"
LOG_LEVEL_ENV = "SHEET_INTAKE_LOG_LEVEL"


@dataclass
class ScanOptions:
    skip_row_count: int = DEFAULT_SKIP_ROW_COUNT
    max_row_count: int | None = None
    unique_columns: Sequence[int] = ()
    write_back_mode: WriteBackMode = WriteBackMode.ANY_ROW
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    template_rows: list[list[str]] | None = None
    header_rule: HeaderRuleValidator | None = None

    def __post_init__(self) -> None:
        if self.skip_row_count <= 0:
            self.skip_row_count = DEFAULT_SKIP_ROW_COUNT
        if self.progress_interval <= 0:
            self.progress_interval = DEFAULT_PROGRESS_INTERVAL
        self.write_back_mode = WriteBackMode.parse(self.write_back_mode)
        self.unique_columns = tuple(self.unique_columns)


@dataclass
class ScanConfig:
    schema: SchemaDescriptor
    options: ScanOptions
    required: list[str] = field(default_factory=list)


def parse_header_rules(payload: dict[str, Any]) -> HeaderRuleValidator:
    if not isinstance(payload, dict):
        raise ConfigError("header_rules must be a JSON object")
    groups: list[HeaderRuleGroup] = []
    for position, raw_group in enumerate(payload.get("groups", [])):
        if not isinstance(raw_group, dict) or not isinstance(raw_group.get("values"), list):
            raise ConfigError(f"header_rules.groups[{position}] needs a 'values' list")
        rules: list[HeaderRule] = []
        for raw_rule in raw_group["values"]:
            if isinstance(raw_rule, str):
                rules.append(HeaderRule(raw_rule))
            elif isinstance(raw_rule, dict) and "value" in raw_rule:
                rules.append(HeaderRule(str(raw_rule["value"]), bool(raw_rule.get("repeating", False))))
            else:
                raise ConfigError(f"Invalid rule in header_rules.groups[{position}]: {raw_rule!r}")
        groups.append(HeaderRuleGroup(rules, repeating=bool(raw_group.get("repeating", False))))
    try:
        return HeaderRuleValidator(
            int(payload.get("fixed_columns", 0)),
            groups,
            allowed_start_values=payload.get("allowed_start", []),
            allowed_end_values=payload.get("allowed_end") or None,
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid header_rules: {exc}") from exc


def parse_scan_config(payload: dict[str, Any]) -> ScanConfig:
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    if "schema" not in payload:
        raise ConfigError("Config needs a 'schema' list")
    schema = SchemaDescriptor.from_mapping(payload["schema"])

    max_rows = payload.get("max_rows")
    header_rules = payload.get("header_rules")
    options = ScanOptions(
        skip_row_count=int(payload.get("skip_rows", DEFAULT_SKIP_ROW_COUNT)),
        max_row_count=int(max_rows) if max_rows is not None else None,
        unique_columns=[int(index) for index in payload.get("unique_columns", [])],
        write_back_mode=WriteBackMode.parse(payload.get("write_back_mode")),
        progress_interval=int(payload.get("progress_interval", DEFAULT_PROGRESS_INTERVAL)),
        header_rule=parse_header_rules(header_rules) if header_rules else None,
    )

    required = [str(name) for name in payload.get("required", [])]
    unknown = [name for name in required if name not in schema.names]
    if unknown:
        raise ConfigError(f"Required fields not in schema: {unknown}")
    return ScanConfig(schema=schema, options=options, required=required)


def load_scan_config(config_path: Path) -> ScanConfig:
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    return parse_scan_config(payload)


def output_stamp_override() -> str | None:
    return os.environ.get(OUTPUT_STAMP_ENV) or None


def log_level_from_env(default: str = "WARNING") -> str:
    return (os.environ.get(LOG_LEVEL_ENV) or default).upper()
