"""Integration tests for the command line interface."""

import json
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from esi_processor.cli.main import cli, parse_header
from tests.helpers.server import FragmentHandler, fragment_server


@pytest.fixture
def origin() -> Iterator[str]:
    """Start a local fragment origin."""
    with fragment_server() as base_url:
        yield base_url


@pytest.fixture(autouse=True)
def _isolate(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Keep ESI_* variables and .env files out, and reset logging after."""
    for name in ("ESI_BASE_URL", "ESI_MAX_DEPTH", "ESI_ALLOWED_HOSTS", "ESI_CACHE_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    structlog.reset_defaults()


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


class TestProcessCommand:
    """Tests for `esi process`."""

    def test_process_file(self, runner: CliRunner, origin: str, tmp_path: Path) -> None:
        """Test resolving a document read from a file."""
        page = tmp_path / "page.html"
        page.write_text('<body><esi:include src="/nested"/></body>', encoding="utf-8")

        result = runner.invoke(cli, ["process", str(page), "--base-url", origin])

        assert result.exit_code == 0, result.output
        assert "<body><nav><header>Site</header></nav></body>" in result.output

    def test_process_stdin_to_file(
        self, runner: CliRunner, origin: str, tmp_path: Path
    ) -> None:
        """Test reading stdin and writing to --out."""
        out = tmp_path / "out.html"

        result = runner.invoke(
            cli,
            ["process", "-", "--base-url", origin, "--out", str(out)],
            input='<esi:include src="/header"/>',
        )

        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8") == "<header>Site</header>"

    def test_headers_forwarded(self, runner: CliRunner, origin: str) -> None:
        """Test that --header values reach the origin."""
        result = runner.invoke(
            cli,
            ["process", "-", "--base-url", origin, "--header", "Cookie: id=9"],
            input='<esi:include src="/cookie"/>',
        )

        assert result.exit_code == 0, result.output
        assert "<span>id=9</span>" in result.output

    def test_max_depth_option(self, runner: CliRunner, origin: str) -> None:
        """Test that --max-depth 0 drops nested includes."""
        result = runner.invoke(
            cli,
            ["process", "-", "--base-url", origin, "--max-depth", "0"],
            input='<esi:include src="/nested"/>',
        )

        assert result.exit_code == 0, result.output
        assert "<nav></nav>" in result.output
        assert FragmentHandler.hits["/header"] == 0

    def test_allowed_host_blocks_others(self, runner: CliRunner, origin: str) -> None:
        """Test that --allowed-host restricts fetched origins."""
        result = runner.invoke(
            cli,
            [
                "process",
                "-",
                "--allowed-host",
                "http://cdn.invalid",
            ],
            input=f'[<esi:include src="{origin}/header"/>]',
        )

        assert result.exit_code == 0, result.output
        assert "[]" in result.output
        assert FragmentHandler.hits["/header"] == 0

    def test_allowed_host_pattern(self, runner: CliRunner, origin: str) -> None:
        """Test that re: entries are compiled as patterns."""
        result = runner.invoke(
            cli,
            ["process", "-", "--allowed-host", r"re:^http://127\.0\.0\.1:\d+$"],
            input=f'<esi:include src="{origin}/header"/>',
        )

        assert result.exit_code == 0, result.output
        assert "<header>Site</header>" in result.output

    def test_base_url_from_environment(
        self, runner: CliRunner, origin: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that ESI_BASE_URL is used when no option is given."""
        monkeypatch.setenv("ESI_BASE_URL", origin)

        result = runner.invoke(cli, ["process", "-"], input='<esi:include src="/header"/>')

        assert result.exit_code == 0, result.output
        assert "<header>Site</header>" in result.output

    def test_malformed_header_is_usage_error(self, runner: CliRunner) -> None:
        """Test that a header without colon exits with status 2."""
        result = runner.invoke(
            cli, ["process", "-", "--header", "no-colon-here"], input="<p/>"
        )

        assert result.exit_code == 2

    def test_invalid_pattern_is_usage_error(self, runner: CliRunner) -> None:
        """Test that a broken re: entry exits with status 2."""
        result = runner.invoke(
            cli, ["process", "-", "--allowed-host", "re:(broken"], input="<p/>"
        )

        assert result.exit_code == 2


class TestTagsCommand:
    """Tests for `esi tags`."""

    HTML = (
        '<esi:include src="/a" alt="/b"/>'
        '<p>text</p>'
        '<esi:include src="/c"></esi:include>'
    )

    def test_lists_tags(self, runner: CliRunner) -> None:
        """Test the tab separated listing."""
        result = runner.invoke(cli, ["tags", "-"], input=self.HTML)

        assert result.exit_code == 0
        assert result.output.splitlines() == [
            "/a\t/b\tself-closing",
            "/c\t\tblock",
        ]

    def test_json_output(self, runner: CliRunner) -> None:
        """Test the JSON listing."""
        result = runner.invoke(cli, ["tags", "--json", "-"], input=self.HTML)

        assert result.exit_code == 0
        tags = json.loads(result.output)
        assert [tag["src"] for tag in tags] == ["/a", "/c"]
        assert tags[0]["raw"] == '<esi:include src="/a" alt="/b"/>'
        assert tags[1]["self_closing"] is False


class TestParseHeader:
    """Tests for parse_header."""

    def test_splits_on_first_colon(self) -> None:
        """Test that values may contain colons."""
        assert parse_header("Referer: http://example.com:8080/") == (
            "Referer",
            "http://example.com:8080/",
        )

    def test_version(self, runner: CliRunner) -> None:
        """Test the version option."""
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output
