"""
Mailwatch - CLI Entry Point

Command-line interface for Gmail watch management and batched mail retrieval.
Also the place where long-lived collaborators (client caches) are built.
"""

import click
from anthropic import Anthropic

from .ai.claude_client import ClaudeClient
from .ai.client_cache import ClientCache
from .cli.watch_commands import token_options, watch
from .core.config import get_config
from .core.database import DatabaseManager
from .core.logging_config import setup_logging
from .gmail.batch import BatchTransport
from .gmail.client import GmailAPIClient
from .gmail.messages import MessageService


def build_message_service(config, access_token, refresh_token) -> MessageService:
    """Message retrieval for one mailbox owner."""
    client = GmailAPIClient.from_tokens(
        config.gmail_api, access_token, refresh_token, timeout=config.app.request_timeout_seconds
    )
    transport = BatchTransport(config.gmail_api.batch_url, timeout=config.app.request_timeout_seconds)
    return MessageService(client, transport, config.gmail_api.messages_path)


def build_claude_client(config) -> ClaudeClient:
    """Claude client backed by a process-wide, bounded client cache."""
    cache = ClientCache(
        lambda key: Anthropic(api_key=key),
        max_size=config.app.client_cache_size,
        ttl_seconds=config.app.client_cache_ttl_seconds,
    )
    return ClaudeClient(config.llm, cache)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--log-file", type=str, help="Log file path")
@click.pass_context
def cli(ctx, verbose, log_file):
    """Mailwatch CLI.

    Gmail push-notification watches and batched message retrieval.
    """
    ctx.ensure_object(dict)

    config = get_config()
    log_level = "DEBUG" if verbose else config.app.log_level
    setup_logging(
        log_level=log_level,
        log_file=log_file or config.app.log_file,
        log_format=config.app.log_format,
        max_bytes=config.app.log_max_bytes,
        backup_count=config.app.log_backup_count,
    )

    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file


@cli.command("init-db")
def init_db():
    """Create database tables."""
    config = get_config()
    db = DatabaseManager(config.database.connection_string)
    db.create_tables()
    click.echo("✅ Database tables created")


@cli.command("check-config")
def check_config():
    """Validate configuration and report problems."""
    errors = get_config().validate()
    if errors:
        for error in errors:
            click.echo(f"❌ {error}", err=True)
        raise SystemExit(1)
    click.echo("✅ Configuration valid")


@cli.command()
@click.option("--query", "-q", type=str, help="Gmail search query (e.g. 'from:x@y.com')")
@click.option("--max-results", type=click.IntRange(1, 100), help="Maximum messages to fetch (max 100)")
@token_options
def fetch(query, max_results, access_token, refresh_token):
    """Search the mailbox and batch-fetch matching messages.

    Examples:
        python -m mailwatch.main fetch -q "from:x@y.com" --max-results 10
    """
    config = get_config()
    service = build_message_service(config, access_token, refresh_token)
    messages = service.query_batch_messages(
        query=query,
        max_results=max_results or min(config.app.default_max_results, 100),
    )

    if not messages:
        click.echo("No messages found")
        return
    for message in messages:
        click.echo(f"{message.id}\t{message.parsed.date}\t{message.parsed.sender}\t{message.parsed.subject}")


cli.add_command(watch)


if __name__ == "__main__":
    cli()
