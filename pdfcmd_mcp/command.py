"""
Shell-style command assembly with single-shot dispatch to a conversion service.

Example::

    command = Command("http://localhost:3000")
    command.escape_args = True
    command.add_arg("--name=", "d'Artagnan")
    command.add_args({"inputArg": "https://example.com/invoice", "margin": "10mm"})
    command.output_file = "invoice.pdf"
    if command.execute():
        print("saved")
    else:
        print(command.get_error())
"""

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import IO, Any, Protocol, runtime_checkable

import httpx

from .client import ConversionClient
from .config import CommandOptions, UnknownOptionError
from .escaping import escape_arg, escape_command, locale_scope
from .paths import is_windows, rewrite_windows_command
from .schemas import ExecutionResult
from .tmpfile import TmpFile
from .utils import is_valid_url

logger = logging.getLogger(__name__)

TRIM_CHARACTERS = " \t\n\r\0\x0b\x0c"
MISSING_COMMAND_ERROR = "Could not locate any executable command"
MISSING_OUTPUT_ERROR = "No output file configured"
URL_ENDPOINT = "pdf-from-url"
HTML_ENDPOINT = "pdf-from-html"

OutputSink = str | os.PathLike | TmpFile | IO[bytes]


@runtime_checkable
class CommandInput(Protocol):
    """Anything that can stand in for a path or content reference on the command line."""

    def as_command_input(self) -> str: ...


def input_text(value: Any) -> str:
    """Return the string a value contributes as a positional argument."""
    if isinstance(value, CommandInput):
        return value.as_command_input()
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    return str(value)


def _is_positional(key: Any) -> bool:
    if isinstance(key, bool):
        return False
    if isinstance(key, int):
        return True
    return isinstance(key, str) and key.isdigit()


def _value_text(value: Any) -> str:
    # true -> "1", false -> "" as the conversion service expects
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)


class Command:
    """
    A single command invocation: base command, ordered argument tokens and
    the outcome of running it once.

    Pass a string to set the base command, or a mapping of options (see
    ``CommandOptions``). Unknown option keys raise ``UnknownOptionError``.
    """

    def __init__(
        self,
        options: str | Mapping[str, Any] | None = None,
        *,
        client: ConversionClient | None = None,
    ):
        self.escape_args: bool = False
        self.escape_command: bool = False
        self.timeout: float | None = 5
        self.locale: str | None = None
        self.output_file: OutputSink | None = None
        self.windows: bool | None = None

        self._command: str | None = None
        self._stdin: str | None = None
        self._args: list[str] = []
        self._remote_target: str | None = None
        self._client = client
        self.result = ExecutionResult()

        if isinstance(options, Mapping):
            self.set_options(options)
        elif isinstance(options, str):
            self.set_command(options)

    def __str__(self) -> str:
        exec_command = self.get_exec_command()
        return exec_command if exec_command is not False else ""

    def __repr__(self) -> str:
        return f"Command({self._command!r}, args={len(self._args)}, executed={self.result.executed})"

    # -- configuration -------------------------------------------------

    def set_options(self, options: Mapping[str, Any]) -> "Command":
        """
        Apply a mapping of options.

        Plain attributes (escape_args, escape_command, timeout, locale,
        output_file, windows) are assigned first, then setter-backed options
        (command, stdin, args) run in that order, so escaping and platform
        settings apply to the command whatever the key order. A None value
        leaves the current setting unchanged.
        """
        provided = CommandOptions.from_mapping(options).provided()
        for name in _OPTION_FIELDS:
            if provided.get(name) is not None:
                setattr(self, name, provided[name])
        for name, setter in _OPTION_SETTERS.items():
            if name in provided and provided[name] is not None:
                setter(self, provided[name])
        return self

    def set_command(self, command: str) -> "Command":
        """
        Set the base command (a program or the conversion service URL).

        Escaped with shell-command rules when ``escape_command`` is on. On
        Windows an absolute program path is rewritten to change drive and
        directory first.
        """
        windows = self.get_is_windows()
        if self.escape_command:
            command = escape_command(command, windows=windows)
        if windows:
            command = rewrite_windows_command(command)
        self._command = command
        return self

    def get_command(self) -> str | None:
        return self._command

    def set_stdin(self, stdin: str) -> "Command":
        self._stdin = stdin
        return self

    def get_stdin(self) -> str | None:
        return self._stdin

    def get_is_windows(self) -> bool:
        return self.windows if self.windows is not None else is_windows()

    def get_remote_target(self) -> str | None:
        return self._remote_target

    # -- arguments -----------------------------------------------------

    def set_args(self, args: str) -> "Command":
        """Replace all tokens with ``args`` verbatim (no escaping)."""
        self._args = [args]
        return self

    def get_args(self) -> list[str]:
        return list(self._args)

    def add_arg(self, key: str, value: Any = None, escape: bool | None = None) -> "Command":
        """
        Append one argument token.

        Args:
            key: argument key, e.g. ``--feature`` or ``--name=``. A trailing
                ``=`` joins key and value with ``=``, otherwise a space is used.
            value: optional value; a list adds several space-separated values
                after a single key, e.g. ``'--exclude' 'a' 'b'``.
            escape: overrides ``escape_args`` for this call.
        """
        do_escape = self.escape_args if escape is None else escape
        with locale_scope(self.locale if do_escape else None):
            self._args.append(self._format_arg(key, value, do_escape))
        return self

    def _format_arg(self, key: str, value: Any, do_escape: bool) -> str:
        windows = self.get_is_windows()

        def esc(text: Any) -> str:
            text = _value_text(text)
            return escape_arg(text, windows=windows) if do_escape else text

        if value is None:
            return esc(key)

        if key.endswith("="):
            separator, key = "=", key[:-1]
        else:
            separator = " "

        if isinstance(value, (list, tuple)):
            params = " ".join(esc(item) for item in value)
        else:
            params = esc(value)
        return f"{esc(key)}{separator}{params}"

    def add_args(self, args: Mapping[Any, Any]) -> "Command":
        """
        Flatten an option mapping into tokens.

        ``input`` becomes a positional token. ``inputArg`` is captured as the
        remote target when it is a URL, otherwise it is added as an escaped
        positional token. Integer keys name bare flags (``--<value>``); other
        keys become ``--<key> <value>``, repeated for list values. A mapping
        value adds ``--<key> <subkey> <subvalue>`` per non-integer subkey.
        A ``None`` value yields the bare flag ``--<key>``; booleans render as
        ``1`` and the empty string.
        """
        remaining = dict(args)

        source = remaining.pop("input", None)
        if source is not None:
            self.add_arg(input_text(source))

        target = remaining.pop("inputArg", None)
        if target is not None:
            text = input_text(target)
            if is_valid_url(text):
                self._remote_target = text
            else:
                self.add_arg(text, escape=True)

        for key, value in remaining.items():
            if value is None:
                self.add_arg(f"--{key}")
            elif _is_positional(key):
                self.add_arg(f"--{value}")
            elif isinstance(value, (list, tuple)):
                for item in value:
                    self.add_arg(f"--{key}", item)
            elif isinstance(value, Mapping):
                for subkey, subvalue in value.items():
                    if _is_positional(subkey):
                        self.add_arg(f"--{key}", subvalue)
                    else:
                        self.add_arg(f"--{key}", [subkey, subvalue])
            else:
                self.add_arg(f"--{key}", value)
        return self

    def get_exec_command(self) -> str | bool:
        """Return the full command string, or False when no command is configured."""
        command = self._command
        if not command:
            self.result.error = MISSING_COMMAND_ERROR
            return False
        return f"{command} {' '.join(self._args)}" if self._args else command

    # -- execution -----------------------------------------------------

    def execute(self) -> bool:
        """
        Run the command once.

        The base command is the conversion service URL: a captured remote
        target is posted to ``/pdf-from-url``, anything else to
        ``/pdf-from-html``. On HTTP 200 the body replaces the contents of
        ``output_file``. Returns whether execution succeeded; details come
        from ``get_error()``, ``get_stderr()`` and ``get_exit_code()``.
        """
        if not self._command:
            self.result.error = MISSING_COMMAND_ERROR
            return False
        if self.output_file is None:
            self.result.error = MISSING_OUTPUT_ERROR
            return False

        options = " ".join(self._args)
        base = self._command.rstrip("/")
        if self._remote_target is not None and is_valid_url(self._remote_target):
            url = f"{base}/{URL_ENDPOINT}"
            payload: dict[str, Any] = {"url": self._remote_target, "options": options}
        else:
            url = f"{base}/{HTML_ENDPOINT}"
            payload = {"html_content": self._remote_target, "options": options}

        client = self._client or ConversionClient(timeout=self.timeout)
        try:
            response = client.post_json(url, payload)
        except httpx.HTTPError as exc:
            logger.warning("Conversion request failed: %s (%s)", url, exc)
            self.result.error = f"Request to {url} failed: {exc}"
            return False

        if response.status_code != 200:
            logger.warning("Conversion service returned status=%s: %s", response.status_code, url)
            return False

        try:
            _write_sink(self.output_file, response.content)
        except OSError as exc:
            logger.warning("Could not write conversion output: %s", exc)
            self.result.error = f"Failed to write output: {exc}"
            return False
        self.result.executed = True
        logger.debug("Wrote %d bytes from %s", len(response.content), url)
        return True

    # -- results -------------------------------------------------------

    @property
    def executed(self) -> bool:
        return self.result.executed

    def get_output(self, trim: bool = True, characters: str = TRIM_CHARACTERS) -> str:
        """Return captured stdout, empty if none."""
        return self.result.stdout.strip(characters) if trim else self.result.stdout

    def get_error(self, trim: bool = True, characters: str = TRIM_CHARACTERS) -> str:
        """Return the error message, either stderr or an internal message."""
        return self.result.error.strip(characters) if trim else self.result.error

    def get_stderr(self, trim: bool = True, characters: str = TRIM_CHARACTERS) -> str:
        return self.result.stderr.strip(characters) if trim else self.result.stderr

    def get_exit_code(self) -> int | None:
        return self.result.exit_code


def _write_sink(sink: OutputSink, data: bytes) -> None:
    """Replace the contents of a borrowed output sink with ``data``."""
    if isinstance(sink, TmpFile):
        sink.write_bytes(data)
    elif isinstance(sink, (str, os.PathLike)):
        Path(sink).write_bytes(data)
    elif hasattr(sink, "write"):
        if getattr(sink, "seekable", lambda: False)():
            sink.seek(0)
            sink.truncate()
        sink.write(data)
        if hasattr(sink, "flush"):
            sink.flush()
    else:
        raise TypeError(f"Unsupported output sink: {type(sink).__name__}")


_OPTION_FIELDS = ("escape_args", "escape_command", "timeout", "locale", "output_file", "windows")
_OPTION_SETTERS: dict[str, Callable[[Command, Any], Command]] = {
    "command": Command.set_command,
    "stdin": Command.set_stdin,
    "args": Command.set_args,
}


__all__ = [
    "Command",
    "CommandInput",
    "HTML_ENDPOINT",
    "MISSING_COMMAND_ERROR",
    "OutputSink",
    "URL_ENDPOINT",
    "UnknownOptionError",
    "input_text",
]
