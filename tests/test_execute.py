import io
import json

import httpx
import pytest

from pdfcmd_mcp.client import ConversionClient
from pdfcmd_mcp.command import MISSING_COMMAND_ERROR, Command
from pdfcmd_mcp.tmpfile import TmpFile

PDF_BYTES = b"%PDF-1.4\n% rendered\n%%EOF\n"


def test_execute_url_target_posts_to_pdf_from_url(httpx_mock, posix_command, service_url, tmp_path):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", content=PDF_BYTES)
    out = tmp_path / "out.pdf"
    posix_command.output_file = str(out)
    posix_command.add_args({"inputArg": "https://x.test/doc", "page-size": "A4"})

    assert posix_command.execute() is True
    assert posix_command.executed is True
    assert out.read_bytes() == PDF_BYTES

    request = httpx_mock.get_request()
    assert json.loads(request.content) == {"url": "https://x.test/doc", "options": "--page-size A4"}


def test_execute_without_url_posts_to_pdf_from_html(httpx_mock, posix_command, service_url, tmp_path):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-html", method="POST", content=PDF_BYTES)
    posix_command.output_file = tmp_path / "out.pdf"
    posix_command.add_args({"inputArg": "invoice body", "dpi": 96})

    assert posix_command.execute() is True
    request = httpx_mock.get_request()
    assert json.loads(request.content) == {"html_content": None, "options": "'invoice body' --dpi 96"}


def test_execute_non_200_leaves_sink_unchanged(httpx_mock, posix_command, service_url, tmp_path):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", status_code=404)
    out = tmp_path / "out.pdf"
    out.write_bytes(b"previous")
    posix_command.output_file = out
    posix_command.add_args({"inputArg": "https://x.test/doc"})

    assert posix_command.execute() is False
    assert posix_command.executed is False
    assert out.read_bytes() == b"previous"
    assert posix_command.get_error() == ""
    assert posix_command.get_stderr() == ""
    assert posix_command.get_exit_code() is None


def test_execute_overwrites_stream_sink(httpx_mock, posix_command, service_url):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", content=PDF_BYTES)
    sink = io.BytesIO(b"stale content that is longer than the pdf body" * 2)
    posix_command.output_file = sink
    posix_command.add_args({"inputArg": "https://x.test/doc"})

    assert posix_command.execute() is True
    assert sink.getvalue() == PDF_BYTES


def test_execute_writes_into_tmpfile_sink(httpx_mock, posix_command, service_url, tmp_path):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", content=PDF_BYTES)
    posix_command.add_args({"inputArg": "https://x.test/doc"})
    with TmpFile(b"placeholder", suffix=".pdf", directory=tmp_path) as sink:
        posix_command.output_file = sink
        assert posix_command.execute() is True
        assert sink.read_bytes() == PDF_BYTES
        assert sink.path.exists()


def test_execute_unconfigured_returns_configuration_error(tmp_path):
    command = Command({"output_file": str(tmp_path / "out.pdf")})
    assert command.execute() is False
    assert command.get_error() == MISSING_COMMAND_ERROR
    assert not (tmp_path / "out.pdf").exists()


def test_execute_without_output_sink_fails_before_request(posix_command):
    assert posix_command.execute() is False
    assert "output" in posix_command.get_error().lower()


def test_execute_transport_error_records_message(httpx_mock, posix_command, tmp_path):
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))
    out = tmp_path / "out.pdf"
    posix_command.output_file = out
    posix_command.add_args({"inputArg": "https://x.test/doc"})

    assert posix_command.execute() is False
    assert "connection refused" in posix_command.get_error()
    assert not out.exists()


def test_execute_uses_injected_client(tmp_path):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=PDF_BYTES)

    client = ConversionClient(timeout=1, transport=httpx.MockTransport(handler))
    command = Command({"command": "http://local.test/", "windows": False, "output_file": tmp_path / "o.pdf"}, client=client)
    command.add_args({"inputArg": "https://x.test/doc"})

    assert command.execute() is True
    assert [str(r.url) for r in seen] == ["http://local.test/pdf-from-url"]


@pytest.mark.parametrize("status", [201, 500])
def test_execute_only_200_counts_as_success(httpx_mock, posix_command, service_url, tmp_path, status):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", status_code=status, content=b"x")
    posix_command.output_file = tmp_path / "out.pdf"
    posix_command.add_args({"inputArg": "https://x.test/doc"})
    assert posix_command.execute() is False
    assert not (tmp_path / "out.pdf").exists()


def test_execute_unwritable_sink_records_error(httpx_mock, posix_command, service_url, tmp_path):
    httpx_mock.add_response(url=f"{service_url}/pdf-from-url", method="POST", content=PDF_BYTES)
    posix_command.output_file = tmp_path / "missing" / "out.pdf"
    posix_command.add_args({"inputArg": "https://x.test/doc"})

    assert posix_command.execute() is False
    assert posix_command.executed is False
    assert posix_command.get_error()
