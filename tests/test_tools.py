import json
from dataclasses import replace

import pytest

from pdfcmd_mcp.tools import RenderError, build_command, env_check, render_pdf

PDF_BYTES = b"%PDF-1.4\n%%EOF\n"


def test_env_check_reflects_config(service_cfg, service_url):
    status = env_check(service_cfg)
    assert status.service_url == service_url
    assert status.escape_args is True
    assert status.default_timeout == 30.0


def test_service_config_env_overrides(monkeypatch, service_cfg):
    monkeypatch.setenv("PDFCMD_TIMEOUT_DEFAULT", "7.5")
    monkeypatch.setenv("PDFCMD_ESCAPE_ARGS", "off")
    monkeypatch.setenv("PDFCMD_MAX_OUTPUT_MB", "2")
    cfg = type(service_cfg)()
    assert cfg.default_timeout == 7.5
    assert cfg.escape_args is False
    assert cfg.max_output_bytes == 2 * 1024 * 1024
    assert cfg.timeout_for(3) == 3
    assert cfg.timeout_for() == 7.5


def test_build_command_preview(service_cfg, service_url):
    preview = build_command(
        options={"page-size": "A4"},
        flags=["landscape"],
        source="https://x.test/doc",
        cfg=service_cfg,
    )
    assert preview.remote_target == "https://x.test/doc"
    assert preview.args == ["'--landscape'", "'--page-size' 'A4'"]
    assert preview.exec_command == f"{service_url} '--landscape' '--page-size' 'A4'"


def test_build_command_rejects_reserved_keys(service_cfg):
    with pytest.raises(ValueError, match="reserved"):
        build_command(options={"inputArg": "x"}, cfg=service_cfg)


def test_render_pdf_writes_output(httpx_mock, service_cfg, service_url, tmp_path):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", content=PDF_BYTES)
    out = tmp_path / "doc.pdf"

    report = render_pdf("https://x.test/doc", out, options={"margin": "5mm"}, cfg=service_cfg)

    assert out.read_bytes() == PDF_BYTES
    assert report.endpoint == "pdf-from-url"
    assert report.size_bytes == len(PDF_BYTES)
    assert report.options == "'--margin' '5mm'"
    assert json.loads(httpx_mock.get_request().content)["url"] == "https://x.test/doc"


def test_render_pdf_failure_leaves_output_untouched(httpx_mock, service_cfg, service_url, tmp_path):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", status_code=502)
    out = tmp_path / "doc.pdf"
    out.write_bytes(b"old")

    with pytest.raises(RenderError, match="pdf-from-url"):
        render_pdf("https://x.test/doc", out, cfg=service_cfg)
    assert out.read_bytes() == b"old"


def test_render_pdf_enforces_size_limit(httpx_mock, service_cfg, service_url, tmp_path):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", content=b"x" * 64)
    cfg = replace(service_cfg, max_output_bytes=16)
    out = tmp_path / "doc.pdf"

    with pytest.raises(ValueError, match="exceeds configured size limit"):
        render_pdf("https://x.test/doc", out, cfg=cfg)
    assert not out.exists()


def test_render_pdf_missing_output_directory(service_cfg, tmp_path):
    with pytest.raises(FileNotFoundError):
        render_pdf("https://x.test/doc", tmp_path / "nope" / "doc.pdf", cfg=service_cfg)


def test_lazy_package_attributes_resolve_their_own_modules(monkeypatch):
    import pdfcmd_mcp

    monkeypatch.delitem(pdfcmd_mcp.__dict__, "tools", raising=False)
    monkeypatch.delitem(pdfcmd_mcp.__dict__, "app_server", raising=False)
    assert pdfcmd_mcp.tools.__name__ == "pdfcmd_mcp.tools"
    assert pdfcmd_mcp.tools.render_pdf is render_pdf
    assert pdfcmd_mcp.app_server.__name__ == "pdfcmd_mcp.app_server"
