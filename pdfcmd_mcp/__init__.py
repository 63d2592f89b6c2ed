"""Command assembly and remote PDF conversion dispatch."""

import importlib
from types import ModuleType

from .command import Command, CommandInput, UnknownOptionError, input_text
from .tmpfile import OMIT, BufferedResponse, TmpFile

__all__ = [
    "BufferedResponse",
    "Command",
    "CommandInput",
    "OMIT",
    "TmpFile",
    "UnknownOptionError",
    "input_text",
    "config",
    "command",
    "escaping",
    "paths",
    "schemas",
    "tools",
    "app_server",
]


def __getattr__(name: str) -> ModuleType:
    # Keep `pdfcmd_mcp.app_server` available without importing mcp eagerly.
    if name in {"app_server", "tools"}:
        mod = importlib.import_module(f".{name}", __name__)
        globals()[name] = mod
        return mod
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
