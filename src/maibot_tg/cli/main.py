"""
MaiBot Telegram adapter CLI — `maibot-tg` command.

Commands:
  maibot-tg run                 Bridge Telegram and MaiBot until interrupted
  maibot-tg send <text>         One-shot message to the MaiBot server
  maibot-tg config              Show the effective configuration
"""

import asyncio
import json
import time
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from maibot_tg import __version__
from maibot_tg.bridge import Bridge, build_bus_client
from maibot_tg.config import DEFAULT_CONFIG_PATH, Config, load_config
from maibot_tg.errors import AdapterError
from maibot_tg.log import configure_logging

console = Console()

SECRET_MASK = "********"


def _load(config_path: Path) -> Config:
    try:
        return load_config(config_path)
    except AdapterError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option(__version__)
@click.option(
    "--config", "config_path", type=click.Path(path_type=Path),
    default=DEFAULT_CONFIG_PATH, show_default=True, help="Path to config.toml",
)
@click.option("--log-level", default=None, help="Override log_level from the config file")
@click.pass_context
def main(ctx: click.Context, config_path: Path, log_level: Optional[str]):
    """Bridge between Telegram and a MaiBot server."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level


def _context_config(ctx: click.Context) -> Config:
    cfg = _load(ctx.obj["config_path"])
    configure_logging(ctx.obj["log_level"] or cfg.log_level)
    return cfg


@main.command("run")
@click.pass_context
def run_cmd(ctx: click.Context):
    """Run the bridge until Ctrl+C."""
    cfg = _context_config(ctx)
    if not cfg.telegram_bot_token:
        console.print("[red]telegram_bot_token is not set (config or TELEGRAM_BOT_TOKEN).[/red]")
        raise SystemExit(1)
    console.print(f"[cyan]Bridging Telegram <-> {cfg.maibot.url}[/cyan]")
    try:
        _run(Bridge(cfg).run())
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


@main.command("send")
@click.argument("text")
@click.option("--user-id", required=True, help="Sender user id")
@click.option("--group-id", default=None, help="Send as a group message")
@click.option("--message-id", default=None, help="Defaults to a timestamp-based id")
@click.pass_context
def send_cmd(ctx: click.Context, text: str, user_id: str, group_id: Optional[str], message_id: Optional[str]):
    """Send one text message to the MaiBot server and exit."""
    cfg = _context_config(ctx)

    async def _send():
        bus = build_bus_client(cfg)
        try:
            await bus.connect()
            await bus.send_text_message(message_id or f"cli_{int(time.time())}", user_id, text, group_id)
        finally:
            await bus.close()

    try:
        _run(_send())
    except AdapterError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    console.print("[green]Sent.[/green]")


@main.command("config")
@click.pass_context
def config_cmd(ctx: click.Context):
    """Print the effective configuration (secrets masked)."""
    cfg = _load(ctx.obj["config_path"])
    data = cfg.model_dump(by_alias=True)
    if data["telegram_bot_token"]:
        data["telegram_bot_token"] = SECRET_MASK
    if data["maibot"]["token"]:
        data["maibot"]["token"] = SECRET_MASK
    click.echo(json.dumps(data, indent=2))


if __name__ == "__main__":
    main()
