import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from importlib import metadata
from typing import Callable, cast

import anyio
import anyio.to_thread
from mcp import types
from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from pydantic import AnyUrl

from .config import CommandOptions, ServiceConfig, UnknownOptionError
from .tools import RenderError, build_command, env_check, render_pdf, serialize_model

server = Server("pdfcmd-mcp")
SERVICE_CFG = ServiceConfig()
logger = logging.getLogger(__name__)
_USE_JSON_LOG = os.getenv("PDFCMD_LOG_FORMAT", "0").lower() in {"1", "true", "json", "structured"}
_INCLUDE_PROVENANCE_VERBOSE = os.getenv("PDFCMD_INCLUDE_PROVENANCE", "0").lower() not in {"", "0", "false"}
_REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="")
_REQUEST_START: ContextVar[float] = ContextVar("request_start", default=0.0)
_CONCURRENCY_SEM = (
    anyio.Semaphore(SERVICE_CFG.max_concurrent_operations) if SERVICE_CFG.max_concurrent_operations else None
)


def _log_event(level: int, message: str, **fields) -> None:
    request_id = _REQUEST_ID.get()
    if request_id:
        fields.setdefault("request_id", request_id)
    if _USE_JSON_LOG:
        logger.log(level, json.dumps({"event": message, **fields}, ensure_ascii=False, default=str))
    else:
        extras = " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)
        prefix = f"[{request_id}] " if request_id else ""
        suffix = f" | {extras}" if extras else ""
        logger.log(level, "%s%s%s", prefix, message, suffix)


def _build_provenance() -> dict[str, object]:
    provenance: dict[str, object] = {
        "service_url": SERVICE_CFG.service_url,
        "timeout_seconds": SERVICE_CFG.default_timeout,
        "request_id": _REQUEST_ID.get() or None,
        "concurrency_limit": SERVICE_CFG.max_concurrent_operations,
    }
    start = _REQUEST_START.get()
    if start:
        provenance["duration_seconds"] = round(time.monotonic() - start, 3)
    if _INCLUDE_PROVENANCE_VERBOSE:
        try:
            pkg_version = metadata.version("pdfcmd-mcp")
        except metadata.PackageNotFoundError:
            pkg_version = None
        provenance.update({"python_version": sys.version.split()[0], "package_version": pkg_version})
    return provenance


def _json_content(payload) -> list[types.TextContent]:
    if isinstance(payload, dict):
        payload = {**payload, "provenance": _build_provenance()}
    return [types.TextContent(type="text", text=json.dumps(payload, ensure_ascii=False, indent=2))]


async def env_status() -> list[types.TextContent]:
    """Report conversion service settings."""
    return _json_content(serialize_model(env_check(SERVICE_CFG)))


async def build_command_tool(
    source: str | None = None,
    options: dict | None = None,
    flags: list[str] | None = None,
    service_url: str | None = None,
    escape: bool | None = None,
) -> list[types.TextContent]:
    """Assemble the conversion invocation without sending it."""
    preview = build_command(
        options=options, flags=flags, source=source, service_url=service_url, escape=escape, cfg=SERVICE_CFG
    )
    return _json_content(serialize_model(preview))


async def render_pdf_tool(
    source: str,
    output_path: str,
    options: dict | None = None,
    flags: list[str] | None = None,
    service_url: str | None = None,
    timeout: float | None = None,
) -> list[types.TextContent]:
    """Render a URL or HTML reference to a PDF file."""

    def _render():
        return render_pdf(
            source,
            output_path,
            options=options,
            flags=flags,
            service_url=service_url,
            timeout=timeout,
            cfg=SERVICE_CFG,
        )

    report = await anyio.to_thread.run_sync(_render)
    return _json_content(serialize_model(report))


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    handler: Callable
    schema: dict
    metadata: dict[str, object]


_OPTIONS_PROP = {
    "type": "object",
    "description": "Converter options; each key becomes --<key> <value>, list values repeat the flag",
}
_FLAGS_PROP = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Bare flags emitted as --<flag> before keyed options",
}
_SERVICE_URL_PROP = {"type": "string", "description": "Override the conversion service base URL"}

_TOOL_SPECS = [
    ToolSpec(
        name="env_status",
        description="Show the configured conversion service and escaping defaults",
        handler=env_status,
        schema={"type": "object", "properties": {}},
        metadata={"runtime_hint": "instant (<1s)", "io_hint": "No inputs; reads environment configuration"},
    ),
    ToolSpec(
        name="build_command_tool",
        description="Preview the escaped option string and endpoint target for a render",
        handler=build_command_tool,
        schema={
            "type": "object",
            "properties": {
                "source": {"type": "string", "description": "URL or document reference to render"},
                "options": _OPTIONS_PROP,
                "flags": _FLAGS_PROP,
                "service_url": _SERVICE_URL_PROP,
                "escape": {"type": "boolean", "description": "Override argument escaping"},
            },
        },
        metadata={"runtime_hint": "instant (<1s)", "io_hint": "No network access"},
    ),
    ToolSpec(
        name="render_pdf_tool",
        description="Render a URL (or HTML reference) to PDF via the conversion service",
        handler=render_pdf_tool,
        schema={
            "type": "object",
            "properties": {
                "source": {"type": "string", "description": "URL or document reference to render"},
                "output_path": {"type": "string", "description": "Where to write the PDF"},
                "options": _OPTIONS_PROP,
                "flags": _FLAGS_PROP,
                "service_url": _SERVICE_URL_PROP,
                "timeout": {"type": "number", "description": "Request timeout in seconds"},
            },
            "required": ["source", "output_path"],
        },
        metadata={
            "runtime_hint": "seconds; bounded by the service",
            "io_hint": "One HTTP POST; writes output_path on success only",
            "timeout_seconds": SERVICE_CFG.default_timeout,
        },
    ),
]

TOOL_SPECS: dict[str, ToolSpec] = {spec.name: spec for spec in _TOOL_SPECS}


def _tool_description(spec: ToolSpec) -> str:
    meta = spec.metadata or {}
    parts = []
    if runtime := meta.get("runtime_hint"):
        parts.append(f"runtime {runtime}")
    if timeout := meta.get("timeout_seconds"):
        parts.append(f"timeout≈{timeout}s")
    suffix = "; ".join(parts)
    return f"{spec.description} ({suffix})" if suffix else spec.description


def _error_result(kind: str, message: str, tool: str | None = None) -> types.CallToolResult:
    """Return a structured MCP error payload."""
    payload = {"kind": kind, "message": message, "tool": tool}
    request_id = _REQUEST_ID.get()
    if request_id:
        payload["request_id"] = request_id
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps(payload, ensure_ascii=False, indent=2))],
        isError=True,
    )


@server.list_tools()
async def list_tools() -> list[types.Tool]:
    return [
        types.Tool(name=spec.name, description=_tool_description(spec), inputSchema=spec.schema)
        for spec in _TOOL_SPECS
    ]


@server.call_tool(validate_input=True)
async def dispatch_tool(name: str, arguments: dict | None) -> types.CallToolResult:
    spec = TOOL_SPECS.get(name)
    if spec is None:
        return _error_result("validation", f"Unknown tool: {name}", tool=name)

    _REQUEST_ID.set(str(uuid.uuid4())[:8])
    _REQUEST_START.set(time.monotonic())
    _log_event(logging.INFO, "tool_call_start", tool=name, args=arguments)

    try:
        if _CONCURRENCY_SEM:
            async with _CONCURRENCY_SEM:
                result = await spec.handler(**(arguments or {}))
        else:
            result = await spec.handler(**(arguments or {}))
    except UnknownOptionError as exc:
        _log_event(logging.WARNING, "validation_error", tool=name, error=str(exc))
        return _error_result("validation", str(exc), tool=name)
    except FileNotFoundError as exc:
        _log_event(logging.WARNING, "not_found", tool=name, error=str(exc))
        return _error_result("not_found", str(exc), tool=name)
    except RenderError as exc:
        _log_event(logging.WARNING, "render_error", tool=name, error=str(exc))
        return _error_result("render", str(exc), tool=name)
    except ValueError as exc:
        _log_event(logging.WARNING, "validation_error", tool=name, error=str(exc))
        return _error_result("validation", str(exc), tool=name)
    except TypeError as exc:
        _log_event(logging.WARNING, "type_error", tool=name, error=str(exc))
        return _error_result("validation", f"Invalid arguments for {name}: {exc}", tool=name)
    except Exception as exc:  # pragma: no cover
        _log_event(logging.ERROR, "runtime_error", tool=name, error=str(exc))
        return _error_result("runtime", str(exc), tool=name)
    finally:
        duration_ms = round((time.monotonic() - _REQUEST_START.get()) * 1000, 2)
        _log_event(logging.INFO, "tool_call_finished", tool=name, duration_ms=duration_ms)

    return types.CallToolResult(content=result, isError=False)


@server.list_resources()
async def list_resources() -> list[types.Resource]:
    resources = [
        types.Resource(
            name="command options",
            uri=cast(AnyUrl, "tool://options"),
            description="Options accepted by Command.set_options",
            mimeType="application/json",
        )
    ]
    for tool_name in TOOL_SPECS:
        resources.append(
            types.Resource(
                name=f"{tool_name} guidance",
                uri=cast(AnyUrl, f"tool://guidance/{tool_name}"),
                description="Runtime guidance and defaults for the tool",
                mimeType="application/json",
            )
        )
    return resources


@server.read_resource()
async def read_resource(uri: str):
    uri_str = str(uri)
    if uri_str == "tool://options":
        fields = {
            name: {"alias": info.alias, "type": str(info.annotation)}
            for name, info in CommandOptions.model_fields.items()
        }
        payload = json.dumps({"options": fields}, indent=2)
        return [ReadResourceContents(content=payload, mime_type="application/json")]

    if uri_str.startswith("tool://guidance/"):
        tool = uri_str.split("tool://guidance/", 1)[1]
        spec = TOOL_SPECS.get(tool)
        if spec is None:
            raise FileNotFoundError(f"Unknown resource URI: {uri_str}")
        meta = spec.metadata or {}
        payload = json.dumps(
            {
                "tool": tool,
                "description": spec.description,
                "runtime_hint": meta.get("runtime_hint"),
                "io_hint": meta.get("io_hint"),
                "service_url": SERVICE_CFG.service_url,
                "timeout_seconds": SERVICE_CFG.default_timeout,
            },
            indent=2,
        )
        return [ReadResourceContents(content=payload, mime_type="application/json")]

    raise FileNotFoundError(f"Unknown resource URI: {uri_str}")


async def _async_main():
    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read, write):
        init_options = server.create_initialization_options()
        await server.run(read, write, init_options, raise_exceptions=True)


def main():
    logging.basicConfig(level=os.getenv("PDFCMD_LOG_LEVEL", "WARNING").upper(), stream=sys.stderr)
    anyio.run(_async_main)


if __name__ == "__main__":
    main()
