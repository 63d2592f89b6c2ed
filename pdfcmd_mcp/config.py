import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel


def _env_or_default(env_var: str, default: str) -> str:
    return os.getenv(env_var, default)


def _env_int(env_var: str, default: int | None) -> int | None:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_float(env_var: str, default: float | None) -> float | None:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _env_bool(env_var: str, default: bool = False) -> bool:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return raw.lower() not in {"", "0", "false", "no", "off"}


def _env_bytes(env_var: str, default: int | None) -> int | None:
    """
    Read an integer MB value from env and return bytes. Returns None when unset/invalid.
    """
    raw_val = _env_int(env_var, None)
    if raw_val is None:
        return default
    return raw_val * 1024 * 1024


class UnknownOptionError(ValueError):
    """Raised when bulk configuration receives a key outside the known option set."""


class CommandOptions(BaseModel):
    """
    Options accepted by ``Command.set_options``.

    Keys may be given in snake_case or camelCase (``escape_args`` / ``escapeArgs``).
    Unset fields are left untouched on the command.
    """

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    command: str | None = None
    escape_args: bool | None = None
    escape_command: bool | None = None
    timeout: float | None = None
    locale: str | None = None
    stdin: str | None = None
    args: str | None = None
    output_file: Any = None
    windows: bool | None = None

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "CommandOptions":
        try:
            return cls.model_validate(dict(options))
        except ValidationError as exc:
            unknown = [str(err["loc"][0]) for err in exc.errors() if err["type"] == "extra_forbidden" and err["loc"]]
            if unknown:
                raise UnknownOptionError(f"Unknown configuration option '{unknown[0]}'") from exc
            raise

    def provided(self) -> dict[str, Any]:
        """Return only the options the caller actually passed."""
        return {name: getattr(self, name) for name in self.model_fields_set}


@dataclass
class ServiceConfig:
    """
    Runtime defaults for the conversion tool layer and MCP server.

    Environment overrides:
    - PDFCMD_SERVICE_URL: base URL of the conversion service
    - PDFCMD_TIMEOUT_DEFAULT: request timeout in seconds
    - PDFCMD_ESCAPE_ARGS: escape option tokens (default on)
    - PDFCMD_LOCALE: LC_CTYPE locale to use while escaping
    - PDFCMD_MAX_CONCURRENCY: concurrent renders allowed by the server
    - PDFCMD_MAX_OUTPUT_MB: reject rendered artifacts above this size
    """

    service_url: str = field(default_factory=lambda: _env_or_default("PDFCMD_SERVICE_URL", "http://localhost:3000"))
    default_timeout: float | None = field(default_factory=lambda: _env_float("PDFCMD_TIMEOUT_DEFAULT", 30.0))
    escape_args: bool = field(default_factory=lambda: _env_bool("PDFCMD_ESCAPE_ARGS", True))
    locale: str | None = field(default_factory=lambda: os.getenv("PDFCMD_LOCALE") or None)
    max_concurrent_operations: int | None = field(default_factory=lambda: _env_int("PDFCMD_MAX_CONCURRENCY", 4))
    max_output_bytes: int | None = field(default_factory=lambda: _env_bytes("PDFCMD_MAX_OUTPUT_MB", None))

    def timeout_for(self, override: float | None = None) -> float | None:
        """Return the per-call timeout, falling back to the configured default."""
        return override if override is not None else self.default_timeout


__all__ = ["CommandOptions", "ServiceConfig", "UnknownOptionError"]
