# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for mime-mailer.

Messages are described by JSON payloads (see :class:`~mime_mailer.payload.MessagePayload`).

Usage:
    mime-mailer compose message.json -o message.eml
    mime-mailer send message.json --config mime-mailer.ini
    mime-mailer recipients message.json --json
    mime-mailer check-address "Bob <bob@example.com>"

Example payload:
    {
      "from": "alice@example.com",
      "from_name": "Alice",
      "to": ["bob@example.com"],
      "subject": "Report",
      "body": "See attached.",
      "attachments": [{"path": "report.pdf"}]
    }
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import IO, Any

import aiosmtplib
import click
from pydantic import ValidationError
from rich.console import Console

from .address import parse_address, validate_format
from .config import load_settings
from .errors import MailError
from .message import Message
from .payload import build_message
from .smtp import SmtpSender

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def _load_message(payload_file: IO[str]) -> Message:
    """Parse a JSON payload into a message, exiting with status 1 on failure."""
    try:
        data = json.load(payload_file)
    except json.JSONDecodeError as exc:
        print_error(f"Invalid JSON payload: {exc}")
        sys.exit(1)
    try:
        return build_message(data)
    except ValidationError as exc:
        print_error(f"Invalid payload: {exc.error_count()} validation error(s)")
        for error in exc.errors():
            location = ".".join(str(item) for item in error["loc"])
            err_console.print(f"  {location}: {error['msg']}")
        sys.exit(1)
    except MailError as exc:
        print_error(str(exc))
        sys.exit(1)
    except KeyError as exc:
        print_error(f"Missing field: {exc.args[0]}")
        sys.exit(1)


@click.group()
@click.version_option(package_name="mime-mailer")
@click.option(
    "--log-level",
    default=lambda: os.getenv("MIME_MAILER_LOG_LEVEL", "WARNING"),
    show_default="WARNING",
    help="Logging level (also MIME_MAILER_LOG_LEVEL).",
)
def main(log_level: str) -> None:
    """mime-mailer: compose and send MIME email messages."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


@main.command("compose")
@click.argument("payload", type=click.File("r"))
@click.option("--output", "-o", type=click.File("wb"), default="-", help="Where to write the message (default: stdout).")
def compose(payload: IO[str], output: IO[bytes]) -> None:
    """Write the RFC 5322 representation of PAYLOAD.

    Example:

        mime-mailer compose message.json -o message.eml
    """
    msg = _load_message(payload)
    try:
        msg.write_to(output)
    except MailError as exc:
        print_error(str(exc))
        sys.exit(1)
    output.flush()


@main.command("send")
@click.argument("payload", type=click.File("r"))
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="INI configuration file.")
@click.option("--use-config-from", is_flag=True, help="Use the configured sender as envelope sender.")
def send(payload: IO[str], config_path: str | None, use_config_from: bool) -> None:
    """Compose PAYLOAD and send it through the configured SMTP server.

    Example:

        mime-mailer send message.json --config mime-mailer.ini
    """
    msg = _load_message(payload)
    config = load_settings(config_path)

    async def _send() -> None:
        async with SmtpSender(config.smtp) as sender:
            await sender.send_messages(msg, use_config_from=use_config_from)

    try:
        run_async(_send())
    except (MailError, aiosmtplib.SMTPException, OSError) as exc:
        print_error(f"Sending failed: {exc}")
        sys.exit(1)

    recipients = msg.get_recipients()
    print_success(f"Message sent to {len(recipients)} recipient(s) via {config.smtp.host}:{config.smtp.port}")


@main.command("recipients")
@click.argument("payload", type=click.File("r"))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def recipients(payload: IO[str], as_json: bool) -> None:
    """List the envelope recipients of PAYLOAD (To, Cc and Bcc, deduplicated)."""
    msg = _load_message(payload)
    try:
        addresses = msg.get_recipients()
    except MailError as exc:
        print_error(str(exc))
        sys.exit(1)

    if as_json:
        print_json(addresses)
        return
    for address in addresses:
        console.print(address, highlight=False)


@main.command("check-address")
@click.argument("address")
def check_address(address: str) -> None:
    """Validate ADDRESS and print its bare form."""
    try:
        bare = parse_address(address)
    except MailError as exc:
        print_error(str(exc))
        sys.exit(1)
    if not validate_format(bare):
        print_error(f"Unsupported address format: {bare}")
        sys.exit(1)
    print_success(bare)


if __name__ == "__main__":
    main()
