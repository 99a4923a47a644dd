"""
CLI commands for Gmail watch subscription management.
"""

import sys

import click

from ..core.config import get_config
from ..core.database import DatabaseManager
from ..core.observability import ErrorReporter
from ..gmail.client import GmailAPIClient
from ..watch.manager import WatchManager, WatchStatus


def build_watch_manager(config, db: DatabaseManager) -> WatchManager:
    """Wire a WatchManager to the database and a token-based client factory."""

    def client_factory(access_token, refresh_token):
        return GmailAPIClient.from_tokens(
            config.gmail_api, access_token, refresh_token, timeout=config.app.request_timeout_seconds
        )

    return WatchManager(
        store=db,
        topic_name=config.gmail_api.pubsub_topic_name,
        client_factory=client_factory,
        error_reporter=ErrorReporter(),
        renew_threshold_hours=config.app.renew_threshold_hours,
    )


def token_options(func):
    """Shared --access-token / --refresh-token options."""
    func = click.option("--refresh-token", envvar="GMAIL_REFRESH_TOKEN", help="OAuth refresh token")(func)
    func = click.option("--access-token", envvar="GMAIL_ACCESS_TOKEN", help="OAuth access token")(func)
    return func


def _echo_watch_result(result):
    if result.status == WatchStatus.WATCHED:
        click.echo(f"✅ Watching inbox (expires: {result.expires_at.isoformat()})")
    elif result.status == WatchStatus.SKIPPED:
        click.echo(f"✅ Watch still valid (expires: {result.expires_at.isoformat()})")
    elif result.status == WatchStatus.AMBIGUOUS:
        click.echo("⚠️  Watch accepted but no expiration returned; stored state unchanged")
    else:
        click.echo(f"❌ Watch failed: {result.error}", err=True)
        sys.exit(1)


@click.group()
def watch():
    """Manage Gmail push-notification watches."""
    pass


@watch.command("start")
@click.option("--user-id", required=True, help="Mailbox owner ID")
@click.option("--email", help="Mailbox address (stored on first use)")
@token_options
def start_command(user_id, email, access_token, refresh_token):
    """
    Subscribe a mailbox's INBOX to the configured Pub/Sub topic.

    Example:
        python -m mailwatch.main watch start --user-id 42 --email me@example.com
    """
    config = get_config()
    db = DatabaseManager(config.database.connection_string)
    db.get_or_create_user(user_id, email=email)

    manager = build_watch_manager(config, db)
    client = manager.client_factory(access_token, refresh_token)
    _echo_watch_result(manager.watch(user_id, client))


@watch.command("renew")
@click.option("--user-id", required=True, help="Mailbox owner ID")
@token_options
def renew_command(user_id, access_token, refresh_token):
    """
    Renew a mailbox's watch if it is missing or about to expire.

    Example:
        python -m mailwatch.main watch renew --user-id 42
    """
    config = get_config()
    db = DatabaseManager(config.database.connection_string)
    current = db.get_subscription_expiration(user_id)

    manager = build_watch_manager(config, db)
    client = manager.client_factory(access_token, refresh_token)
    _echo_watch_result(manager.renew(user_id, client, current))


@watch.command("stop")
@click.option("--user-id", required=True, help="Mailbox owner ID")
@token_options
def stop_command(user_id, access_token, refresh_token):
    """
    Cancel a mailbox's watch and clear its stored expiration.

    Example:
        python -m mailwatch.main watch stop --user-id 42
    """
    config = get_config()
    db = DatabaseManager(config.database.connection_string)
    manager = build_watch_manager(config, db)

    result = manager.unwatch(user_id, access_token, refresh_token)
    click.echo(f"🛑 Unwatched ({result.status.value})")


@watch.command("due")
def due_command():
    """List mailboxes whose watch is missing or due for renewal."""
    config = get_config()
    db = DatabaseManager(config.database.connection_string)
    users = db.get_users_due_for_renewal(config.app.renew_threshold_hours)

    if not users:
        click.echo("No watches due for renewal")
        return
    for user in users:
        expires = user.watch_emails_expiration_date
        click.echo(f"{user.id}\t{user.email or '-'}\t{expires.isoformat() if expires else 'unwatched'}")
