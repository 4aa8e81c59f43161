"""Structured provisioning records."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from engineshell.errors import ValidationError

LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True, slots=True)
class LogRecord:
    level: str
    operation: str
    message: str
    system: str | None = None
    node: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "level": self.level,
            "operation": self.operation,
            "system": self.system,
            "node": self.node,
            "message": self.message,
        }
        if self.extra:
            payload["extra"] = dict(self.extra)
        return payload


@dataclass(slots=True)
class StructuredLogger:
    """Collects one record per resolution step, in evaluation order."""

    records: list[LogRecord] = field(default_factory=list)

    def log(
        self,
        *,
        operation: str,
        system: str | None,
        node: str | None,
        message: str,
        level: str = "info",
        extra: Mapping[str, Any] | None = None,
    ) -> LogRecord:
        if level not in LEVELS:
            raise ValidationError(f"Unknown log level: {level}", context={"operation": operation})
        record = LogRecord(
            level=level,
            operation=operation,
            message=message,
            system=system,
            node=node,
            extra=dict(extra or {}),
        )
        self.records.append(record)
        return record

    def records_for_node(self, node: str) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.records if record.node == node]

    def warnings(self) -> list[LogRecord]:
        return [record for record in self.records if record.level in ("warning", "error")]

    def to_dicts(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.records]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            "".join(json.dumps(record, sort_keys=True) + "\n" for record in self.to_dicts()),
            encoding="utf-8",
        )
        return output_path
