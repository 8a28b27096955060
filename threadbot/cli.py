"""
Threadbot CLI - operator commands.

Usage:
    threadbot --help                   Show all commands
    threadbot tick --slot morning      Run one delivery tick now
    threadbot sweep                    Purge expired codes and old claims
    threadbot issue-code ACCOUNT       Issue a linking code for an account
    threadbot grant-credits ACCOUNT 3  Add generation credits
    threadbot set-webhook              Register the Telegram webhook
    threadbot webhook-info             Show Telegram webhook status
"""

import asyncio

import typer

app = typer.Typer(
    name="threadbot",
    help="Threadbot CLI - scheduled Telegram prompts",
    no_args_is_help=True,
)


def _print_success(message: str) -> None:
    typer.echo(f"  ✅ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


@app.command()
def tick(
    slot: str = typer.Option(..., "--slot", "-s", help="Slot to deliver: morning or evening"),
):
    """Run one delivery tick for a slot (same as the cron endpoint)."""
    from threadbot.core.database import AsyncSessionLocal
    from threadbot.core.logging import setup_logging
    from threadbot.models.recipient import Slot
    from threadbot.services.delivery import run_delivery_tick
    from threadbot.services.telegram import TelegramGateway

    setup_logging()

    try:
        slot_value = Slot(slot.lower())
    except ValueError:
        _print_error(f"Unknown slot: {slot}")
        typer.echo("   Valid options: morning, evening")
        raise typer.Exit(1)

    async def run():
        async with AsyncSessionLocal() as db:
            summary = await run_delivery_tick(db, slot_value, TelegramGateway())
            await db.commit()
        typer.echo(
            f"\n{summary.slot.value}: checked={summary.checked} due={summary.due} "
            f"sent={summary.sent} skipped={summary.skipped} failed={summary.failed}"
        )
        for result in summary.results:
            status = "sent" if result.sent else (result.error or result.skipped_reason.value)
            typer.echo(f"   {result.account_id}: {status}")

    asyncio.run(run())


@app.command()
def sweep():
    """Delete expired codes, elapsed attempt counters and old claims."""
    from threadbot.core.database import AsyncSessionLocal
    from threadbot.core.logging import setup_logging
    from threadbot.services.maintenance import run_sweep

    setup_logging()

    async def run():
        async with AsyncSessionLocal() as db:
            stats = await run_sweep(db)
            await db.commit()
        for key, value in stats.items():
            _print_success(f"{key}: {value}")

    asyncio.run(run())


@app.command("issue-code")
def issue_code(
    account_id: str = typer.Argument(..., help="Account to link"),
    timezone: str | None = typer.Option(None, "--timezone", "-t", help="IANA timezone"),
):
    """Issue a Telegram linking code for an account."""
    from threadbot.core.database import AsyncSessionLocal
    from threadbot.core.logging import setup_logging
    from threadbot.services.linking import issue_code as issue

    setup_logging()

    async def run():
        async with AsyncSessionLocal() as db:
            issued = await issue(db, account_id, timezone=timezone)
            await db.commit()
        _print_success(f"Code {issued.code} (expires {issued.expires_at:%H:%M} UTC)")

    asyncio.run(run())


@app.command("grant-credits")
def grant_credits(
    account_id: str = typer.Argument(..., help="Account to credit"),
    amount: int = typer.Argument(..., help="Credits to add"),
):
    """Add generation credits to an account."""
    from threadbot.core.database import AsyncSessionLocal
    from threadbot.core.logging import setup_logging
    from threadbot.services.credits import grant_credits as grant

    setup_logging()

    if amount <= 0:
        _print_error("Amount must be positive")
        raise typer.Exit(1)

    async def run():
        async with AsyncSessionLocal() as db:
            balance = await grant(db, account_id, amount)
            await db.commit()
        _print_success(f"{account_id} balance: {balance}")

    asyncio.run(run())


@app.command("set-webhook")
def set_webhook(
    url: str | None = typer.Option(
        None, "--url", help="Webhook URL (defaults to BASE_URL + webhook path)"
    ),
):
    """Register the Telegram webhook with the configured secret token."""
    from threadbot.config import get_config
    from threadbot.core.logging import setup_logging
    from threadbot.services.telegram import GatewayError, TelegramGateway

    setup_logging()
    config = get_config()
    webhook_url = url or f"{config.settings.base_url}{config.telegram.webhook_path}"

    if not config.telegram.webhook_secret:
        _print_error("TELEGRAM_WEBHOOK_SECRET is not set; the webhook would reject every update")
        raise typer.Exit(1)

    async def run():
        try:
            await TelegramGateway().set_webhook(webhook_url, config.telegram.webhook_secret)
        except GatewayError as e:
            _print_error(str(e))
            raise typer.Exit(1)
        _print_success(f"Webhook set to {webhook_url}")

    asyncio.run(run())


@app.command("webhook-info")
def webhook_info():
    """Show the Telegram webhook status."""
    from threadbot.core.logging import setup_logging
    from threadbot.services.telegram import GatewayError, TelegramGateway

    setup_logging()

    async def run():
        try:
            info = await TelegramGateway().get_webhook_info()
        except GatewayError as e:
            _print_error(str(e))
            raise typer.Exit(1)
        for key in ("url", "pending_update_count", "last_error_date", "last_error_message"):
            typer.echo(f"   {key}: {info.get(key)}")

    asyncio.run(run())


@app.command("delete-webhook")
def delete_webhook():
    """Remove the Telegram webhook."""
    from threadbot.core.logging import setup_logging
    from threadbot.services.telegram import GatewayError, TelegramGateway

    setup_logging()

    async def run():
        try:
            await TelegramGateway().delete_webhook()
        except GatewayError as e:
            _print_error(str(e))
            raise typer.Exit(1)
        _print_success("Webhook deleted")

    asyncio.run(run())


if __name__ == "__main__":
    app()
