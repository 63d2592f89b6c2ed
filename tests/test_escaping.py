import locale

import pytest

from pdfcmd_mcp.escaping import escape_arg, escape_command, locale_scope


def test_escape_arg_posix_wraps_in_single_quotes():
    assert escape_arg("hello world") == "'hello world'"
    assert escape_arg("") == "''"


def test_escape_arg_posix_splices_embedded_quote():
    assert escape_arg("d'Artagnan") == "'d'\\''Artagnan'"


def test_escape_arg_windows_replaces_unescapable_chars():
    assert escape_arg('say "100%"!', windows=True) == '"say  100   "'


def test_escape_arg_windows_doubles_odd_trailing_backslash():
    assert escape_arg("C:\\", windows=True) == '"C:\\\\"'
    assert escape_arg("C:\\\\", windows=True) == '"C:\\\\"'


def test_escape_command_posix_escapes_metacharacters():
    assert escape_command("tool; rm -rf $HOME") == "tool\\; rm -rf \\$HOME"


def test_escape_command_posix_keeps_paired_quotes():
    assert escape_command("tool 'a b'") == "tool 'a b'"
    assert escape_command("tool it's") == "tool it\\'s"


def test_escape_command_windows_uses_caret():
    assert escape_command("tool & echo %PATH%", windows=True) == "tool ^& echo ^%PATH^%"


def test_locale_scope_restores_previous_locale(monkeypatch):
    state = {"current": "C"}
    calls: list[str | None] = []

    def fake_setlocale(category, value=None):
        calls.append(value)
        if value is not None:
            state["current"] = value
        return state["current"]

    monkeypatch.setattr(locale, "setlocale", fake_setlocale)
    with locale_scope("de_DE.UTF-8"):
        assert state["current"] == "de_DE.UTF-8"
    assert state["current"] == "C"
    assert calls == [None, "de_DE.UTF-8", "C"]


def test_locale_scope_restores_on_error(monkeypatch):
    state = {"current": "C"}

    def fake_setlocale(category, value=None):
        if value is not None:
            state["current"] = value
        return state["current"]

    monkeypatch.setattr(locale, "setlocale", fake_setlocale)
    with pytest.raises(RuntimeError):
        with locale_scope("fr_FR.UTF-8"):
            raise RuntimeError("boom")
    assert state["current"] == "C"


def test_locale_scope_noop_without_locale(monkeypatch):
    def fail(*_args, **_kwargs):
        raise AssertionError("setlocale should not be called")

    monkeypatch.setattr(locale, "setlocale", fail)
    with locale_scope(None):
        pass
