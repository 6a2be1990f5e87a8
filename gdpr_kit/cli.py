import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn, Optional

import click
import httpx
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gdpr_kit.core.config import settings
from gdpr_kit.core.encryption import generate_key
from gdpr_kit.core.logging import configure_logging


console = Console()
logger = logging.getLogger(__name__)

STATUS_STYLES = {
    "PASS": "green",
    "WARN": "yellow",
    "FAIL": "red",
}


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any) -> None:
        if isinstance(detail, list):
            detail = "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail)
        super().__init__(str(detail))
        self.status_code = status_code


class ApiSession:
    """Operator connection to a running API; logs in lazily on the first protected call."""

    def __init__(self, client: httpx.Client, username: str, password: Optional[str]) -> None:
        self.client = client
        self.username = username
        self.password = password
        self._token: Optional[str] = None

    def _access_token(self) -> str:
        if self._token is None:
            password = self.password or click.prompt(f"Password for {self.username}", hide_input=True)
            response = self.client.post("/auth/token", data={"username": self.username, "password": password})
            self._check(response)
            self._token = response.json()["access_token"]
        return self._token

    def call(self, method: str, path: str, auth: bool = True, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._access_token()}"} if auth else {}
        response = self.client.request(method, path, headers=headers, **kwargs)
        self._check(response)
        return response

    @staticmethod
    def _check(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        raise ApiError(response.status_code, detail)


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
    sys.exit(1)


def _call(ctx: click.Context, method: str, path: str, **kwargs: Any) -> httpx.Response:
    try:
        return ctx.obj["session"].call(method, path, **kwargs)
    except (ApiError, httpx.HTTPError) as exc:
        _fail(exc)


@click.group()
@click.option("--url", default=settings.api_url, show_default=True, help="Base URL of the running API")
@click.option(
    "--username",
    "-u",
    envvar="GDPR_KIT_CLI_USERNAME",
    default="dpo_admin",
    show_default=True,
    help="DPO account the commands run as",
)
@click.option("--password", envvar="GDPR_KIT_CLI_PASSWORD", default=None, help="Prompted for when omitted")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, url: str, username: str, password: Optional[str], verbose: bool) -> None:
    """GDPR Compliance Kit operations against a running API."""
    ctx.ensure_object(dict)
    configure_logging()
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    client = ctx.obj.get("client")
    if client is None:
        client = httpx.Client(base_url=url, timeout=30.0)
        ctx.call_on_close(client.close)
    ctx.obj["session"] = ApiSession(client, username, password)


@main.command("generate-key")
def generate_key_command() -> None:
    """Print a new Fernet key for GDPR_KIT_ENCRYPTION_KEYS."""
    click.echo(generate_key())


@main.command("retention-cleanup")
@click.option("--dry-run", is_flag=True, help="Only count what would be removed")
@click.option("--audit-days", type=int, default=None, help="Override the audit log retention period")
@click.pass_context
def retention_cleanup(ctx: click.Context, dry_run: bool, audit_days: Optional[int]) -> None:
    """Apply retention periods to logs, consent history, requests and accounts."""
    params: dict[str, Any] = {"dry_run": dry_run}
    if audit_days is not None:
        params["audit_retention_days"] = audit_days
    result = _call(ctx, "POST", "/governance/retention/cleanup", params=params).json()

    table = Table(title="Retention cleanup" + (" (dry run)" if dry_run else ""))
    table.add_column("Category")
    table.add_column("Count", justify="right")
    table.add_row(f"Audit events older than {result['audit_retention_days']} days", str(result["removed_events"]))
    table.add_row("Consent history entries", str(result["removed_consent_history"]))
    table.add_row("Closed requests redacted", str(result["redacted_requests"]))
    table.add_row("Inactive accounts anonymized", str(result["anonymized_accounts"]))
    console.print(table)


@main.command("erase-user")
@click.argument("user_id")
@click.option("--reason", default="operator request", help="Reason recorded in the audit log")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def erase_user(ctx: click.Context, user_id: str, reason: str, yes: bool) -> None:
    """Anonymize USER_ID and every record linked to it."""
    if not yes and not click.confirm(f"Irreversibly erase personal data of {user_id}?"):
        console.print("Aborted.")
        return

    result = _call(ctx, "POST", f"/governance/erase/{user_id}", json={"reason": reason}).json()
    console.print(
        f"[green]Erased[/green] {escape(user_id)} -> {result['anonymized_ref']} "
        f"({result['records_updated']} records updated)"
    )


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def audit(ctx: click.Context, as_json: bool) -> None:
    """Run the compliance checklist; exits 1 when a check fails."""
    report = _call(ctx, "GET", "/governance/audit").json()

    if as_json:
        click.echo(json.dumps(report, indent=2))
    else:
        table = Table(title=f"Compliance audit (score {report['score']:.0%})")
        table.add_column("Check")
        table.add_column("Article")
        table.add_column("Status")
        table.add_column("Detail")
        for check in report["checks"]:
            style = STATUS_STYLES[check["status"]]
            table.add_row(
                check["title"],
                check["article"],
                f"[{style}]{check['status']}[/{style}]",
                escape(check["detail"]),
            )
        console.print(table)

    if report["failures"]:
        sys.exit(1)


@main.command("overdue-requests")
@click.pass_context
def overdue_requests(ctx: click.Context) -> None:
    """List open data subject requests past their deadline."""
    overdue = _call(ctx, "GET", "/data-requests", params={"overdue": True}).json()
    if not overdue:
        console.print("[green]No overdue requests.[/green]")
        return

    table = Table(title="Overdue data subject requests")
    table.add_column("Request")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Due")
    for record in overdue:
        table.add_row(record["request_id"], record["request_type"], record["status"], record["due_at"][:10])
    console.print(table)


@main.command("privacy-policy")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file")
@click.pass_context
def privacy_policy(ctx: click.Context, output: Optional[Path]) -> None:
    """Fetch the privacy policy as Markdown."""
    document = _call(ctx, "GET", "/privacy/policy", auth=False).json()
    if output:
        output.write_text(document["content"], encoding="utf-8")
        console.print(f"Privacy policy {document['version']} written to {output}")
    else:
        click.echo(document["content"])


@main.command("rotate-keys")
@click.pass_context
def rotate_keys(ctx: click.Context) -> None:
    """Re-encrypt stored fields under the service's primary encryption key."""
    counts = _call(ctx, "POST", "/governance/keys/rotate").json()
    for table_name, count in counts.items():
        console.print(f"{table_name}: {count} field(s) re-encrypted")


if __name__ == "__main__":
    main()
