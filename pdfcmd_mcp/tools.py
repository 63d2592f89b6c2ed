import logging
import sys
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from .command import HTML_ENDPOINT, URL_ENDPOINT, Command
from .config import ServiceConfig
from .paths import is_windows
from .schemas import CommandPreview, EnvStatus, RenderReport
from .tmpfile import TmpFile
from .utils import is_valid_url, report_progress

logger = logging.getLogger(__name__)

_SERVICE_CFG = ServiceConfig()


class RenderError(RuntimeError):
    """Raised when the conversion service does not produce an artifact."""


def env_check(cfg: ServiceConfig | None = None) -> EnvStatus:
    cfg = cfg or _SERVICE_CFG
    return EnvStatus(
        service_url=cfg.service_url,
        default_timeout=cfg.default_timeout,
        escape_args=cfg.escape_args,
        locale=cfg.locale,
        platform=sys.platform,
        path_rewriting=is_windows(),
        max_output_bytes=cfg.max_output_bytes,
    )


def _merge_options(options: Mapping[str, Any] | None, flags: Sequence[str] | None) -> dict[Any, Any]:
    """Bare flags go first as positional entries, followed by keyed options."""
    merged: dict[Any, Any] = {index: flag for index, flag in enumerate(flags or [])}
    for key, value in (options or {}).items():
        if key in ("input", "inputArg"):
            raise ValueError(f"Option '{key}' is reserved; pass the document as source")
        merged[key] = value
    return merged


def _new_command(
    cfg: ServiceConfig,
    service_url: str | None,
    escape: bool | None,
    timeout: float | None,
) -> Command:
    command = Command()
    command.escape_args = cfg.escape_args if escape is None else escape
    command.locale = cfg.locale
    command.timeout = cfg.timeout_for(timeout)
    command.set_command(service_url or cfg.service_url)
    return command


def build_command(
    options: Mapping[str, Any] | None = None,
    flags: Sequence[str] | None = None,
    source: str | None = None,
    service_url: str | None = None,
    escape: bool | None = None,
    cfg: ServiceConfig | None = None,
) -> CommandPreview:
    """
    Assemble the invocation for a set of options without dispatching it.
    """
    cfg = cfg or _SERVICE_CFG
    command = _new_command(cfg, service_url, escape, None)
    merged = _merge_options(options, flags)
    if source is not None:
        merged["inputArg"] = source
    command.add_args(merged)

    exec_command = command.get_exec_command()
    if exec_command is False:
        raise RenderError(command.get_error())
    return CommandPreview(
        command=command.get_command(),
        args=command.get_args(),
        exec_command=str(exec_command),
        remote_target=command.get_remote_target(),
    )


def render_pdf(
    source: str,
    output_path: str | Path,
    options: Mapping[str, Any] | None = None,
    flags: Sequence[str] | None = None,
    service_url: str | None = None,
    timeout: float | None = None,
    cfg: ServiceConfig | None = None,
) -> RenderReport:
    """
    Render ``source`` through the conversion service and save it to ``output_path``.

    A URL source is rendered via /pdf-from-url; anything else is passed as an
    escaped positional argument to /pdf-from-html. The artifact lands in a
    scratch file first, so ``output_path`` is untouched when rendering fails.
    """
    cfg = cfg or _SERVICE_CFG
    output = Path(output_path)
    if not output.parent.exists():
        raise FileNotFoundError(f"Output directory does not exist: {output.parent}")

    command = _new_command(cfg, service_url, None, timeout)
    merged = _merge_options(options, flags)
    merged["inputArg"] = source
    command.add_args(merged)

    endpoint = URL_ENDPOINT if is_valid_url(source) else HTML_ENDPOINT
    started = time.monotonic()
    report_progress(f"render start: {source}")
    with TmpFile(suffix=".pdf") as artifact:
        command.output_file = artifact
        if not command.execute():
            detail = command.get_error() or "conversion service rejected the request"
            raise RenderError(f"Rendering {source} via {endpoint} failed: {detail}")

        size = artifact.path.stat().st_size
        if cfg.max_output_bytes is not None and size > cfg.max_output_bytes:
            raise ValueError(
                f"Rendered artifact ({size} bytes) exceeds configured size limit ({cfg.max_output_bytes} bytes)"
            )
        if not artifact.save_as(output):
            raise RenderError(f"Could not save rendered artifact to {output}")

    report_progress(f"render done: {source} -> {output}")
    logger.debug("Rendered %s via %s into %s (%d bytes)", source, endpoint, output, size)
    return RenderReport(
        source=source,
        endpoint=endpoint,
        output_path=str(output),
        size_bytes=size,
        options=" ".join(command.get_args()),
        duration_seconds=round(time.monotonic() - started, 3),
    )


def serialize_model(model: BaseModel) -> dict[str, object]:
    """Return a JSON-serializable dict from a pydantic model."""
    return model.model_dump()


__all__ = [
    "RenderError",
    "build_command",
    "env_check",
    "render_pdf",
    "serialize_model",
]
