"""Webhook Commands - sign, verify and send signed webhook bodies"""

import json
from datetime import UTC, datetime
from pathlib import Path

import httpx
import typer
from rich.console import Console

from jobcore.v1.webhooks import signing

from ..utils.config_manager import config
from ..utils.formatting import print_error, print_success

console = Console()
app = typer.Typer(name="webhook", help="Webhook signing utilities")


def _read_body(data: str | None, file: Path | None) -> str:
    if file is not None:
        return file.read_text()
    if data is not None:
        return data
    print_error("Provide the body with --data or --file")
    raise typer.Exit(2)


def _secret(secret: str | None) -> str:
    value = secret or config.get("webhook.secret")
    if not value:
        print_error("No secret: pass --secret or run `jobcore config set webhook.secret <secret>`")
        raise typer.Exit(2)
    return value


@app.command("sign")
def sign(
    data: str | None = typer.Option(None, "--data", "-d", help="Raw body"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Read body from file"),
    secret: str | None = typer.Option(None, "--secret", help="Shared secret"),
    timestamp: int | None = typer.Option(None, "--timestamp", help="Epoch ms (default: now)"),
):
    """✍️ Print signature headers for a body"""
    body = _read_body(data, file)
    headers = signing.signature_headers(_secret(secret), body, timestamp)
    for name, value in headers.items():
        console.print(f"[cyan]{name}[/cyan]: {value}")


@app.command("verify")
def verify(
    signature: str = typer.Argument(..., help="X-Webhook-Signature value"),
    timestamp: str = typer.Argument(..., help="X-Webhook-Timestamp value"),
    data: str | None = typer.Option(None, "--data", "-d", help="Raw body"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Read body from file"),
    secret: str | None = typer.Option(None, "--secret", help="Shared secret"),
    ignore_age: bool = typer.Option(False, "--ignore-age", help="Skip the timestamp window check"),
):
    """🔐 Verify a signature; exits 1 when it does not match"""
    body = _read_body(data, file)
    key = _secret(secret)

    if ignore_age:
        parsed = signing.parse_timestamp(timestamp)
        valid = parsed is not None and signing.verify(key, parsed, body, signature)
        result = signing.VerificationResult(valid, None if valid else "Invalid signature")
    else:
        result = signing.verify_request(key, body, signature, timestamp)

    if not result.valid:
        print_error(result.error or "Invalid signature")
        raise typer.Exit(1)
    print_success("Signature valid")


@app.command("send")
def send(
    url: str = typer.Argument(..., help="Receiver URL"),
    event_type: str = typer.Option("article.updated", "--type", "-t", help="Event type"),
    data: str = typer.Option("{}", "--data", "-d", help="Event data as JSON"),
    secret: str | None = typer.Option(None, "--secret", help="Shared secret"),
):
    """📤 Send a signed test event to a receiver"""
    try:
        event_data = json.loads(data)
    except json.JSONDecodeError as e:
        print_error(f"--data is not valid JSON: {e}")
        raise typer.Exit(1) from None

    body = json.dumps(
        {"type": event_type, "data": event_data, "timestamp": datetime.now(UTC).isoformat()}
    )
    headers = {
        "Content-Type": "application/json",
        **signing.signature_headers(_secret(secret), body),
    }
    try:
        response = httpx.post(url, content=body, headers=headers, timeout=30)
    except httpx.HTTPError as e:
        print_error(f"Request failed: {e}")
        raise typer.Exit(1) from None

    console.print(f"HTTP [cyan]{response.status_code}[/cyan] {response.text[:500]}")
    if not response.is_success:
        raise typer.Exit(1)
