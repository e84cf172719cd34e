"""
Error registry.

registry.yaml is the single catalogue of FBI-* codes: what the client is
told (title, safe_message, remediation), how it is logged (severity) and
which HTTP status it maps to. The file is validated in full when loaded;
one bad entry rejects the whole file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from app.core.errors import CODE_PATTERN

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).with_name("registry.yaml")

VALID_DOMAINS = {"API", "DB", "VEC", "EMB", "LLM", "WFL", "SRC", "SYS"}
VALID_SEVERITIES = {"DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"}
REQUIRED_FIELDS = (
    "code", "domain", "title", "severity", "retryable",
    "user_action_required", "http_status", "safe_message", "remediation",
)


class RegistryValidationError(Exception):
    """registry.yaml is malformed."""


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    domain: str
    title: str
    severity: str
    retryable: bool
    user_action_required: bool
    http_status: int
    safe_message: str
    remediation: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], position: int) -> "ErrorEntry":
        label = f"entry #{position} ({raw.get('code', '?')})"
        missing = [f for f in REQUIRED_FIELDS if f not in raw]
        if missing:
            raise RegistryValidationError(f"{label}: missing {', '.join(missing)}")

        code = raw["code"]
        if not CODE_PATTERN.match(code):
            raise RegistryValidationError(f"{label}: code does not match FBI-<DOMAIN>-<NNN>")

        domain = raw["domain"]
        if domain not in VALID_DOMAINS:
            raise RegistryValidationError(f"{label}: unknown domain {domain!r}")
        if code.split("-")[1] != domain:
            raise RegistryValidationError(f"{label}: domain {domain!r} differs from the code prefix")

        if raw["severity"] not in VALID_SEVERITIES:
            raise RegistryValidationError(f"{label}: unknown severity {raw['severity']!r}")

        status = int(raw["http_status"])
        if not 400 <= status <= 599:
            raise RegistryValidationError(f"{label}: http_status {status} is not an error status")

        return cls(
            code=code,
            domain=domain,
            title=raw["title"],
            severity=raw["severity"],
            retryable=bool(raw["retryable"]),
            user_action_required=bool(raw["user_action_required"]),
            http_status=status,
            safe_message=raw["safe_message"],
            remediation=list(raw.get("remediation") or []),
            tags=list(raw.get("tags") or []),
        )


class ErrorRegistry:
    """Code → ErrorEntry lookup, filled by load()."""

    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}
        self.schema_version = 0

    def load(self, path: Optional[str] = None) -> None:
        source = Path(path) if path else DEFAULT_REGISTRY_PATH
        data = yaml.safe_load(source.read_text()) or {}

        raw_entries = data.get("errors", [])
        if not isinstance(raw_entries, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for position, raw in enumerate(raw_entries):
            entry = ErrorEntry.from_dict(raw, position)
            if entry.code in entries:
                raise RegistryValidationError(f"duplicate code {entry.code}")
            entries[entry.code] = entry

        self._entries = entries
        self.schema_version = data.get("schema_version", 0)
        logger.info("error_registry_loaded", extra={"count": len(entries), "schema_version": self.schema_version, "path": str(source)})

    def get(self, code: str) -> Optional[ErrorEntry]:
        return self._entries.get(code)

    def lookup(self, code: str) -> ErrorEntry:
        try:
            return self._entries[code]
        except KeyError:
            raise KeyError(f"Unknown error code: {code!r}") from None

    def all_codes(self) -> List[str]:
        return list(self._entries)

    def codes_for_domain(self, domain: str) -> List[str]:
        return [code for code, entry in self._entries.items() if entry.domain == domain]

    def __len__(self) -> int:
        return len(self._entries)


error_registry = ErrorRegistry()
