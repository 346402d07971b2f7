"""Command line interface for pagefetch."""

from __future__ import annotations

import asyncio
import json
import logging
import pathlib
import sys
from typing import Optional

import typer
import yaml
from dotenv import load_dotenv

from pagefetch import get_version
from pagefetch.config import Config, load_config
from pagefetch.core import CookieJarStore, LoggingFetcher, Request
from pagefetch.core.errors import ConfigurationError, FetchError
from pagefetch.fetchers import select_fetcher
from pagefetch.logging import configure_logging

app = typer.Typer(
    name="pagefetch",
    help="Fetch remote documents directly or through a remote Chrome session.",
    no_args_is_help=True,
    add_completion=False,
)

config_app = typer.Typer(help="Configuration utilities.", no_args_is_help=True)
app.add_typer(config_app, name="config")


def _load_environment(env_file: Optional[pathlib.Path]) -> None:
    """Load environment variables from .env files."""

    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=True)
    else:
        load_dotenv(override=False)


def _prepare_logging(
    config: Config,
    override_path: Optional[pathlib.Path],
    override_level: Optional[str],
) -> logging.Logger:
    """Configure logging from the loaded settings; CLI flags take precedence."""

    return configure_logging(config.logging, log_path=override_path, level=override_level)


def _version_callback(value: bool) -> None:
    """Print the package version and exit when requested."""

    if value:
        typer.echo(get_version())
        raise typer.Exit()


@app.callback()
def main(  # pragma: no cover - exercised via CLI invocation
    ctx: typer.Context,
    config: Optional[pathlib.Path] = typer.Option(
        None,
        "--config",
        metavar="PATH",
        help="Path to YAML configuration file (used exclusively).",
    ),
    env_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--env-file",
        metavar="PATH",
        help="Load environment variables from .env-style file before execution.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        metavar="LEVEL",
        help="Override the configured log level (debug, info, warn, error).",
    ),
    log_path: Optional[pathlib.Path] = typer.Option(
        None,
        "--log-path",
        metavar="PATH",
        help="Override the base directory or file for log output.",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show pagefetch version and exit.",
    ),
) -> None:
    """CLI root; loads configuration, logging, and shared context."""

    ctx.ensure_object(dict)
    _load_environment(env_file)

    try:
        config_obj = load_config(config)
    except (FileNotFoundError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc

    try:
        logger = _prepare_logging(config_obj, log_path, log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc
    ctx.obj.update(
        {
            "config": config_obj,
            "config_path": config,
            "logger": logger,
            "cookie_jars": CookieJarStore(),
        }
    )


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    output_format: str = typer.Option(
        "yaml",
        "--format",
        "-f",
        help="Output format: yaml or json.",
    ),
) -> None:
    """Print the effective configuration."""

    config: Config = ctx.obj["config"]
    payload = dict(config.model_dump())
    fmt = output_format.strip().lower()
    if fmt == "json":
        typer.echo(json.dumps(payload, indent=2))
    elif fmt == "yaml":
        typer.echo(yaml.safe_dump(payload, sort_keys=False).rstrip())
    else:
        raise typer.BadParameter("Format must be 'yaml' or 'json'.", param_hint="--format")
    if config.loaded_from:
        typer.echo(f"# loaded from: {', '.join(config.loaded_from)}", err=True)


def _build_request(
    url: Optional[str],
    request_file: Optional[pathlib.Path],
    method: str,
    form_data: Optional[str],
    user_token: str,
    infinite_scroll: bool,
) -> Request:
    if request_file is not None:
        try:
            payload = json.loads(request_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise typer.BadParameter(
                f"Unable to read request: {exc}", param_hint="--request"
            ) from exc
        try:
            return Request.from_dict(payload)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--request") from exc

    if not url:
        raise typer.BadParameter("Provide a URL or --request.", param_hint="URL")
    return Request(
        url=url,
        method=method,
        form_data=form_data or "",
        user_token=user_token,
        infinite_scroll=infinite_scroll,
    )


async def _fetch_to(fetcher, request: Request, destination) -> int:
    stream = await fetcher.fetch(request)
    written = 0
    try:
        async for chunk in stream.aiter_bytes():
            destination.write(chunk)
            written += len(chunk)
    finally:
        await stream.aclose()
    destination.flush()
    return written


@app.command()
def fetch(
    ctx: typer.Context,
    url: Optional[str] = typer.Argument(None, help="URL of the document to fetch."),
    fetcher_name: Optional[str] = typer.Option(
        None,
        "--fetcher",
        metavar="TYPE",
        help="Fetcher type: Base (direct HTTP) or Chrome (remote browser).",
    ),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    form_data: Optional[str] = typer.Option(
        None,
        "--form-data",
        "-d",
        help="Form data as '&'-joined key=value pairs; forces a POST.",
    ),
    user_token: str = typer.Option(
        "", "--user-token", help="Session identity used to keep cookies between fetches."
    ),
    infinite_scroll: bool = typer.Option(
        False, "--infinite-scroll", help="Scroll to the bottom before capturing (Chrome only)."
    ),
    request_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--request",
        metavar="PATH",
        help="JSON request document; overrides URL and request options.",
    ),
    output: Optional[pathlib.Path] = typer.Option(
        None,
        "--output",
        "-o",
        metavar="PATH",
        help="Write content to this file instead of stdout.",
    ),
) -> None:
    """Fetch a document and write its content."""

    config: Config = ctx.obj["config"]
    logger: logging.Logger = ctx.obj["logger"]
    jars: CookieJarStore = ctx.obj["cookie_jars"]

    request = _build_request(url, request_file, method, form_data, user_token, infinite_scroll)
    kind = fetcher_name or request.type or config.fetch.fetcher
    try:
        fetcher = select_fetcher(kind, logger=logger, settings=config.fetch)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_hint="--fetcher") from exc

    wrapped = LoggingFetcher(fetcher, logger)
    jars.bind(wrapped, request.user_token)

    try:
        if output is not None:
            output.parent.mkdir(parents=True, exist_ok=True)
            with output.open("wb") as handle:
                written = asyncio.run(_fetch_to(wrapped, request, handle))
            typer.echo(f"Wrote {written} bytes to {output}", err=True)
        else:
            asyncio.run(_fetch_to(wrapped, request, sys.stdout.buffer))
    except FetchError as exc:
        if output is not None:
            output.unlink(missing_ok=True)
        typer.echo(f"{exc.kind}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        jars.sync(wrapped, request.user_token)


@app.command()
def version() -> None:
    """Print the installed version."""

    typer.echo(get_version())
