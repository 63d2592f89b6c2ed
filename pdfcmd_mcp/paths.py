import ntpath
import sys

from .escaping import escape_arg

_QUOTE_CHARS = ('"', "'")


def is_windows(platform: str | None = None) -> bool:
    """Return True when the (given or current) platform is Windows."""
    return (platform or sys.platform).lower().startswith("win")


def find_drive_position(command: str) -> int | None:
    """
    Return the offset of the drive colon in an absolute Windows path, if any.

    Offset 1 covers ``C:\\...``; offset 2 covers a quoted path such as
    ``"C:\\Program Files (x86)\\tool.exe"``.
    """
    if len(command) > 1 and command[1] == ":" and command[0].isalpha():
        return 1
    if len(command) > 2 and command[2] == ":" and command[0] in _QUOTE_CHARS and command[1].isalpha():
        return 2
    return None


def rewrite_windows_command(command: str) -> str:
    """
    Rewrite an absolute Windows command so cmd.exe switches drive and directory first.

    ``C:\\Program Files\\tool.exe`` becomes
    ``C: && cd "C:\\Program Files" && "tool.exe"``. Relative commands are returned unchanged.
    """
    position = find_drive_position(command)
    if position is None:
        return command

    drive = command[position - 1]
    path = command
    if position == 2:
        quote = command[0]
        path = command[1:]
        if path.endswith(quote):
            path = path[:-1]

    directory = escape_arg(ntpath.dirname(path), windows=True)
    program = escape_arg(ntpath.basename(path), windows=True)
    return f"{drive}: && cd {directory} && {program}"


__all__ = ["find_drive_position", "is_windows", "rewrite_windows_command"]
