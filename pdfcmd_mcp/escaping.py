from __future__ import annotations

import locale
import threading
from collections.abc import Iterator
from contextlib import contextmanager

# Characters a shell treats specially inside an unquoted command string.
_POSIX_COMMAND_SPECIALS = frozenset("#&;`|*?~<>^()[]{}$\\\n\xff")
_WINDOWS_COMMAND_SPECIALS = _POSIX_COMMAND_SPECIALS | frozenset("%!\"'")
_WINDOWS_ARG_STRIPPED = ('"', "%", "!")

# LC_CTYPE is process-wide; every swap holds this lock for its whole duration.
_LOCALE_LOCK = threading.RLock()


def escape_arg(value: str, windows: bool = False) -> str:
    """
    Quote a single argument so a shell passes it through as one word.

    POSIX: wrap in single quotes and splice embedded quotes as '\\''.
    Windows (cmd.exe): wrap in double quotes; ", % and ! cannot be escaped there
    and are replaced by spaces. A trailing odd run of backslashes is doubled so
    it does not escape the closing quote.
    """
    if not windows:
        return "'" + value.replace("'", "'\\''") + "'"

    text = value
    for char in _WINDOWS_ARG_STRIPPED:
        text = text.replace(char, " ")
    trailing = len(text) - len(text.rstrip("\\"))
    if trailing % 2:
        text += "\\"
    return f'"{text}"'


def escape_command(command: str, windows: bool = False) -> str:
    """
    Escape shell metacharacters in a whole command string.

    On POSIX, quotes are left alone when they come in pairs; unpaired quotes
    and the special characters get a backslash. On Windows every special
    character, quotes included, is prefixed with ``^``.
    """
    specials = _WINDOWS_COMMAND_SPECIALS if windows else _POSIX_COMMAND_SPECIALS
    marker = "^" if windows else "\\"
    out: list[str] = []
    closing: int | None = None
    for index, char in enumerate(command):
        if not windows and char in ("'", '"'):
            if closing is None and (match := command.find(char, index + 1)) != -1:
                closing = match
            elif closing is not None and command[closing] == char:
                closing = None
            else:
                out.append("\\")
            out.append(char)
            continue
        if char in specials:
            out.append(marker)
        out.append(char)
    return "".join(out)


@contextmanager
def locale_scope(name: str | None) -> Iterator[None]:
    """
    Temporarily switch LC_CTYPE to ``name``; restore the previous value on exit.

    No-op when ``name`` is empty. The swap touches process-wide state, so
    concurrent callers are serialized. ``locale.Error`` propagates when the
    requested locale is unavailable.
    """
    if not name:
        yield
        return
    with _LOCALE_LOCK:
        previous = locale.setlocale(locale.LC_CTYPE)
        locale.setlocale(locale.LC_CTYPE, name)
        try:
            yield
        finally:
            locale.setlocale(locale.LC_CTYPE, previous)


__all__ = ["escape_arg", "escape_command", "locale_scope"]
