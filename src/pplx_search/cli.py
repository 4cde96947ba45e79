"""
Terminal client for the Perplexity API.

Run with:
    $ pplx search "your search query"
"""
import logging
import os
import sys
from functools import wraps
from logging import getLogger

import click

from pplx_search.client import build_payload, send_chat_request
from pplx_search.config import (
    API_KEY_PREFIX,
    Settings,
    load_api_key,
    looks_like_api_key,
    mask_api_key,
    save_api_key,
)
from pplx_search.errors import (
    SETTINGS_URL,
    AuthenticationFailed,
    EmptyCredential,
    MissingQuery,
    NoPdfConverter,
    PplxError,
    UnexpectedResponse,
    UnknownCommand,
    UnknownFormat,
)
from pplx_search.export import FORMATS, export_document
from pplx_search.responses import classify_response, extract_content

logger = getLogger(__name__)

RULE = "-" * 46
RAW_PREVIEW_LINES = 20
VERIFY_QUERY = "Hello, just testing the API connection."

MODELS = [
    ("sonar-deep-research", "128k", "Chat Completion"),
    ("sonar-reasoning-pro", "128k", "Chat Completion"),
    ("sonar-reasoning", "128k", "Chat Completion"),
    ("sonar-pro", "200k", "Chat Completion"),
    ("sonar", "128k", "Chat Completion"),
    ("r1-1776", "128k", "Chat Completion"),
]

USAGE_EPILOG = """\b
Export formats:
  -f md    Markdown format (default)
  -f txt   Plain text format
  -f pdf   PDF format (requires pandoc, wkhtmltopdf or enscript+ps2pdf)

For available models, run 'pplx models'.
"""


class PplxCommand(click.Command):
    """A command that reports bad options and arguments with exit status 1."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            click.echo(f"Error: {e.format_message()}")
            click.echo("")
            click.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())
            ctx.exit(1)


class PplxGroup(click.Group):
    """A command group that rejects unknown commands and options with exit status 1."""

    command_class = PplxCommand

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError:
            click.echo(str(UnknownCommand(args[0] if args else "")))
            click.echo(ctx.get_help())
            ctx.exit(UnknownCommand.exit_code)

    def resolve_command(self, ctx, args):
        name = args[0] if args else ""
        if name and self.get_command(ctx, name) is None and not name.startswith("-"):
            click.echo(str(UnknownCommand(name)))
            click.echo(ctx.get_help())
            ctx.exit(UnknownCommand.exit_code)
        return super().resolve_command(ctx, args)


def handle_errors(f):
    """Print PplxError diagnostics and exit non-zero instead of a traceback."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except PplxError as e:
            click.echo(f"Error: {e}")
            if e.remediation:
                click.echo("")
                click.echo(e.remediation)
            if isinstance(e, (MissingQuery, UnknownFormat)):
                ctx = click.get_current_context()
                click.echo("")
                click.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())
            sys.exit(e.exit_code)

    return wrapper


def join_query(words: tuple[str, ...]) -> str:
    query = " ".join(words).strip()
    if not query:
        raise MissingQuery()
    return query


def model_option(f):
    return click.option(
        "-m", "--model", default=None, help="Model to use (see 'pplx models')."
    )(f)


@click.group(
    cls=PplxGroup,
    epilog=USAGE_EPILOG,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.pass_context
def cli(ctx):
    """Perplexity API Terminal Client"""
    if ctx.obj is None:
        ctx.obj = Settings.from_env()
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(1)


def run_search(settings: Settings, query: str, model: str, debug: bool = False) -> None:
    api_key = load_api_key(settings.config_file)
    payload = build_payload(query, model)

    click.echo(f"Searching Perplexity for: {query}")
    click.echo(f"Using model: {model}")
    click.echo("Please wait...")

    if debug:
        click.echo("Sending request to API...")
        click.echo(f"Query: {query}")
        click.echo(f"API Key (first 10 chars): {mask_api_key(api_key)}")
        click.echo(f"Using API endpoint: {settings.api_url}")
        click.echo(f"Using model: {model}")
        click.echo("Request payload:")
        click.echo(payload)

    result = send_chat_request(payload, api_key, settings, verbose=debug)

    if debug:
        click.echo("HTTP Headers from response:")
        click.echo(result.trace or "")
        click.echo("Raw API Response:")
        click.echo(result.body)

    classify_response(result)
    extraction = extract_content(result.body)

    click.echo(RULE)
    click.echo("SEARCH RESULTS:")
    click.echo(RULE)

    if extraction.degraded:
        click.echo("Warning: Invalid JSON response detected")
        click.echo("Raw response preview:")
        click.echo("\n".join(result.body.splitlines()[:RAW_PREVIEW_LINES]))
        click.echo("...")
        click.echo("")
        click.echo("Trying fallback extraction...")

    click.echo(extraction.answer)

    if extraction.has_sources:
        click.echo("")
        click.echo("SOURCES:")
        for citation in extraction.citations:
            click.echo(f"* {citation.title}")
            click.echo(f"  {citation.url}")

    click.echo(RULE)


@cli.command()
@model_option
@click.argument("query", nargs=-1)
@click.pass_obj
@handle_errors
def search(settings: Settings, query: tuple[str, ...], model: str = None):
    """Perform a search and print the answer with its sources."""
    run_search(settings, join_query(query), model or settings.default_model)


@cli.command()
@model_option
@click.argument("query", nargs=-1)
@click.pass_obj
@handle_errors
def debug(settings: Settings, query: tuple[str, ...], model: str = None):
    """Search with request and response diagnostics."""
    logging.getLogger().setLevel(logging.DEBUG)
    run_search(settings, join_query(query), model or settings.default_model, debug=True)


@cli.command()
@click.argument("query", nargs=-1)
@click.pass_obj
@handle_errors
def raw(settings: Settings, query: tuple[str, ...]):
    """Show the raw HTTP response, headers included."""
    query = join_query(query)
    api_key = load_api_key(settings.config_file)
    model = settings.default_model

    click.echo(f"Sending query to Perplexity API: {query}")
    click.echo(f"Using model: {model}")
    click.echo("Please wait...")

    result = send_chat_request(build_payload(query, model), api_key, settings)

    click.echo("HTTP Request & Response (including headers):")
    click.echo("-" * 43)
    click.echo(result.format_http())
    click.echo("")
    click.echo("-" * 43)


@cli.command(name="export")
@click.option("-f", "--format", "fmt", default="md", help="Output format: md, txt or pdf.")
@click.option("-o", "--output", default=None, help="Output file (default: derived from the query).")
@model_option
@click.argument("query", nargs=-1)
@click.pass_obj
@handle_errors
def export_results(
    settings: Settings,
    query: tuple[str, ...],
    fmt: str = "md",
    output: str = None,
    model: str = None,
):
    """Export results to a Markdown, text or PDF file."""
    query = join_query(query)
    if fmt not in FORMATS:
        raise UnknownFormat(fmt)
    model = model or settings.default_model

    click.echo(f"Searching Perplexity for: {query}")
    click.echo(f"Using model: {model}")
    click.echo("Please wait...")

    api_key = load_api_key(settings.config_file)
    result = send_chat_request(build_payload(query, model), api_key, settings)
    classify_response(result)
    extraction = extract_content(result.body, strict=True)

    document = export_document(query, extraction, fmt=fmt, output=output)
    if document.converter:
        click.echo(f"Converted to PDF using {document.converter}")
    if document.substituted:
        click.echo(f"Warning: {NoPdfConverter.__doc__}")
        click.echo(f"Saved as plain text file instead: {document.path}")

    click.echo(f"✅ Results exported to: {document.path}")


def verify_api_key(settings: Settings) -> None:
    api_key = load_api_key(settings.config_file)
    click.echo("Testing API key with a simple request...")

    result = send_chat_request(
        build_payload(VERIFY_QUERY, settings.default_model), api_key, settings
    )
    try:
        classify_response(result)
        if '"choices"' not in result.body:
            raise UnexpectedResponse(result.body)
    except AuthenticationFailed as e:
        e.remediation = (
            "This error means your API key is invalid or expired. Please check that:\n"
            "1. You have an active Perplexity API subscription\n"
            "2. You've copied the full API key correctly from your Perplexity account\n"
            f"3. The API key begins with '{API_KEY_PREFIX}'\n\n"
            f"Visit {SETTINGS_URL} to manage your API keys"
        )
        click.echo("❌ API key verification FAILED")
        raise
    except PplxError:
        click.echo("❌ API key verification FAILED with unexpected response")
        raise

    click.echo("✅ API key verification SUCCESSFUL")


@cli.command()
@click.pass_obj
@handle_errors
def verify(settings: Settings):
    """Verify your API key works."""
    verify_api_key(settings)


@cli.command()
@click.pass_obj
@handle_errors
def configure(settings: Settings):
    """Set up your API key."""
    api_key = click.prompt(
        f"Enter your Perplexity API Key (should start with '{API_KEY_PREFIX}')",
        hide_input=True,
        default="",
        show_default=False,
    ).strip()
    if not api_key:
        raise EmptyCredential("API key is empty. Configuration canceled.")

    if not looks_like_api_key(api_key):
        click.echo(f"Warning: API key doesn't start with '{API_KEY_PREFIX}'. This may not be correct.")
        if not click.confirm("Continue anyway?", default=False):
            click.echo("Configuration canceled.")
            sys.exit(1)

    path = save_api_key(settings.config_file, api_key)
    click.echo(f"API key saved to {path}")

    if click.confirm("Would you like to verify the API key works?", default=False):
        verify_api_key(settings)


@cli.command()
@click.pass_obj
def models(settings: Settings):
    """List available models."""
    click.echo("=== Perplexity AI Models ===")
    click.echo(f"{'Model':<20}| {'Context Length':<15}| Type")
    click.echo(f"{'-' * 20}|{'-' * 16}|{'-' * 16}")
    for name, context, kind in MODELS:
        click.echo(f"{name:<20}| {context:<15}| {kind}")
    click.echo("")
    click.echo(f"Default model: {settings.default_model}")
    click.echo("")
    click.echo("For up-to-date model information, visit: https://docs.perplexity.ai")


@cli.command(name="help")
@click.pass_context
def show_help(ctx):
    """Show this help message."""
    click.echo(ctx.parent.get_help())


def main():
    logging.basicConfig(
        level=os.getenv("PPLX_LOG_LEVEL", "WARNING").upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    cli(prog_name="pplx")


if __name__ == "__main__":
    main()
