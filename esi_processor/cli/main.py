"""CLI commands for the include processor."""

import asyncio
import json
import logging
import re
import sys
import uuid
from typing import TextIO

import click
import structlog
from pydantic import ValidationError

from esi_processor import __version__
from esi_processor.engine.processor import ESIProcessor
from esi_processor.engine.scanner import find_include_tags
from esi_processor.errors import ConfigurationError
from esi_processor.fetch.metrics import FetchMetrics
from esi_processor.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
)
from esi_processor.settings.app import PATTERN_PREFIX, get_settings


logger = structlog.get_logger()

COMPONENT_CLI = "cli"


def parse_header(value: str) -> tuple[str, str]:
    """Split a ``Name: value`` header argument.

    Args:
        value: Raw ``--header`` argument.

    Returns:
        Tuple of header name and value.

    Raises:
        click.BadParameter: If the argument has no name or no colon.
    """
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        msg = f"expected 'Name: value', got {value!r}"
        raise click.BadParameter(msg, param_hint="--header")
    return name.strip(), header_value.strip()


def _parse_allowed_hosts(entries: tuple[str, ...]) -> list[str | re.Pattern[str]] | None:
    if not entries:
        return None
    parsed: list[str | re.Pattern[str]] = []
    for entry in entries:
        if entry.startswith(PATTERN_PREFIX):
            try:
                parsed.append(re.compile(entry[len(PATTERN_PREFIX) :]))
            except re.error as e:
                msg = f"invalid pattern {entry!r}: {e}"
                raise click.BadParameter(msg, param_hint="--allowed-host") from e
        else:
            parsed.append(entry)
    return parsed


async def _process_document(
    processor: ESIProcessor, html: str, headers: dict[str, str]
) -> str:
    result = await processor.process(html, {"headers": headers})
    await processor.wait_for_refreshes()
    return result


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Edge Side Includes processor CLI."""


@cli.command()
@click.argument("input_file", metavar="INPUT", type=click.File("r"))
@click.option(
    "--out",
    "output_file",
    type=click.File("w"),
    default="-",
    help="Where to write the processed document (default: stdout).",
)
@click.option(
    "--base-url",
    type=str,
    default=None,
    help="Base URL for relative include sources (default: ESI_BASE_URL).",
)
@click.option(
    "--max-depth",
    type=click.IntRange(min=0, max=100),
    default=None,
    help="Nested include passes allowed (default: ESI_MAX_DEPTH or 3).",
)
@click.option(
    "--allowed-host",
    "allowed_hosts",
    multiple=True,
    help="Allowed origin; prefix with 're:' for a regular expression. Repeatable.",
)
@click.option(
    "--header",
    "headers",
    multiple=True,
    help="Header forwarded to fragment origins, as 'Name: value'. Repeatable.",
)
@click.option(
    "--no-cache",
    is_flag=True,
    help="Disable the fragment cache.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0.0, min_open=True, max=300.0),
    default=None,
    help="Per-request timeout in seconds (default: ESI_TIMEOUT_SECONDS).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON format for logs (default: false).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
def process(  # noqa: PLR0913
    input_file: TextIO,
    output_file: TextIO,
    base_url: str | None,
    max_depth: int | None,
    allowed_hosts: tuple[str, ...],
    headers: tuple[str, ...],
    no_cache: bool,
    timeout_seconds: float | None,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Resolve every include of an HTML document.

    INPUT is a file path, or '-' to read standard input. Settings not given
    on the command line come from ESI_* environment variables.
    """
    forwarded = dict(parse_header(value) for value in headers)
    hosts = _parse_allowed_hosts(allowed_hosts)

    configure_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        json_format=json_logs,
    )
    request_id = str(uuid.uuid4())
    bind_request_context(request_id, source=getattr(input_file, "name", None))
    log = logger.bind(component=COMPONENT_CLI, command="process")

    try:
        settings = get_settings()
        fetch_config = settings.fetch_config()
        if timeout_seconds is not None:
            fetch_config = fetch_config.model_copy(
                update={"timeout_seconds": timeout_seconds}
            )

        overrides: dict[str, object] = {"fetch_config": fetch_config}
        if base_url is not None:
            overrides["base_url"] = base_url
        if max_depth is not None:
            overrides["max_depth"] = max_depth
        if hosts is not None:
            overrides["allowed_hosts"] = hosts
        if no_cache:
            overrides["cache"] = False

        processor = ESIProcessor.from_settings(
            settings, log_to=click.get_text_stream("stderr"), **overrides
        )
    except (ConfigurationError, ValidationError) as e:
        log.warning("configuration_invalid", error=str(e))
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    html = input_file.read()
    log.info("process_started", bytes_in=len(html), headers=len(forwarded))

    try:
        result = asyncio.run(_process_document(processor, html, forwarded))
    finally:
        clear_request_context()

    output_file.write(result)
    log.info(
        "process_complete",
        bytes_out=len(result),
        metrics=FetchMetrics.get_instance().to_dict(),
    )


@cli.command()
@click.argument("input_file", metavar="INPUT", type=click.File("r"))
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output as JSON.",
)
def tags(input_file: TextIO, json_output: bool) -> None:
    """List the include tags of a document without fetching anything."""
    found = find_include_tags(input_file.read())

    if json_output:
        output = [
            {
                "raw": tag.raw_text,
                "src": tag.src,
                "alt": tag.alt,
                "self_closing": tag.self_closing,
                "start": tag.start,
                "end": tag.end,
            }
            for tag in found
        ]
        click.echo(json.dumps(output, indent=2))
        return

    for tag in found:
        kind = "self-closing" if tag.self_closing else "block"
        click.echo(f"{tag.src or ''}\t{tag.alt or ''}\t{kind}")
