"""send2tg CLI application.

Issues and inspects start, auth and chat tokens offline, using the same
signing keys as the API.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import typer

from api.core.config import get_settings
from api.services.auth_options import AuthOptions
from api.services.chat_token import ChatCredential, ChatTokenManager, exchange_auth_token
from api.services.codec import INT64_MAX, INT64_MIN
from api.services.keys import SigningKeys, TokenConfig
from api.services.start_token import StartTokenManager
from api.services.token_result import TokenErrorKind
from send2tg_cli.output import console, print_json, print_kv

app = typer.Typer(help="send2tg token tools")
start_app = typer.Typer(help="Start tokens for the bot /start flow")
chat_app = typer.Typer(help="Auth and chat tokens")
auth_app = typer.Typer(help="Auth token exchange")

app.add_typer(start_app, name="start")
app.add_typer(chat_app, name="chat")
app.add_typer(auth_app, name="auth")


class Domain(str, Enum):
    auth = "auth"
    chat = "chat"


@dataclass
class CliContext:
    keys: SigningKeys
    json_output: bool


@app.callback()
def main(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
    secret: str | None = typer.Option(
        None, "--secret", envvar="SEND2TG_SECRET", help="Override the base signing secret"
    ),
    public_level: int | None = typer.Option(
        None, "--public-level", min=0, max=2, help="Override the public access level"
    ),
) -> None:
    """Derive signing keys from settings and initialize context."""
    settings = get_settings()
    base_secret = secret or settings.signing_secret
    if not base_secret:
        typer.secho(
            "No signing secret. Set TOKEN or BOT_TOKEN, or pass --secret.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
    level = settings.public_level if public_level is None else public_level
    config = TokenConfig(base_secret=base_secret, public_level=level)
    ctx.obj = CliContext(keys=SigningKeys.derive(config), json_output=json_output)


def _chat_manager(context: CliContext, domain: Domain) -> ChatTokenManager:
    key = context.keys.auth if domain is Domain.auth else context.keys.chat
    return ChatTokenManager(key)


def _reject(context: CliContext, kind: TokenErrorKind | None) -> None:
    reason = kind.value if kind else "unknown"
    if context.json_output:
        print_json({"ok": False, "error": reason})
    else:
        typer.secho(f"Token rejected: {reason}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _show_credential(context: CliContext, credential: ChatCredential, title: str) -> None:
    if context.json_output:
        print_json({"ok": True, "chat": credential.to_wire()})
        return
    print_kv(
        title,
        [
            ("ID", credential.id),
            ("Name", credential.name),
            ("Version", credential.version),
            ("Expires", credential.expires),
            ("Group", credential.is_group),
            ("Signature", credential.signature),
        ],
    )


def _emit_token(context: CliContext, field: str, token: str) -> None:
    if context.json_output:
        print_json({field: token})
    else:
        console.print(token, soft_wrap=True)


@start_app.command("issue")
def start_issue(
    ctx: typer.Context,
    user: int = typer.Option(
        0, "--user", min=INT64_MIN, max=INT64_MAX, help="Bind the token to a Telegram user id"
    ),
    expires_ms: int | None = typer.Option(
        None, "--expires-ms", help="Preferred chat validity in milliseconds"
    ),
) -> None:
    context: CliContext = ctx.obj
    manager = StartTokenManager(context.keys.start)
    token = manager.issue(user_id=user, options=AuthOptions.for_duration(expires_ms))
    _emit_token(context, "start_token", token)


@start_app.command("verify")
def start_verify(
    ctx: typer.Context,
    token: str = typer.Argument(..., help="Start token"),
    user: int = typer.Option(0, "--user", help="Telegram user id presenting the token"),
    strict: bool = typer.Option(False, "--strict", help="Require a token bound to --user"),
) -> None:
    context: CliContext = ctx.obj
    manager = StartTokenManager(context.keys.start)
    result = manager.verify(token, user, strict_binding=strict)
    if not result.ok:
        _reject(context, result.error)

    _, expiry_label = result.options.expires_duration()
    if context.json_output:
        print_json(
            {
                "ok": True,
                "user_id": result.user_id,
                "issued_at": result.issued_at,
                "auth_options": result.options.to_number(),
            }
        )
        return
    print_kv(
        "Start token",
        [
            ("Bound user", result.user_id or "unbound"),
            ("Issued at", result.issued_at),
            ("Preferred validity", expiry_label or "none"),
        ],
    )


@chat_app.command("issue")
def chat_issue(
    ctx: typer.Context,
    chat_id: int = typer.Option(..., "--id", help="Telegram chat id"),
    name: str = typer.Option("", "--name", help="Display name"),
    version: int = typer.Option(0, "--version", min=0, help="Revocation version"),
    expires: int | None = typer.Option(None, "--expires", help="Expiry, epoch milliseconds"),
    domain: Domain = typer.Option(Domain.chat, "--domain", help="Signing domain"),
) -> None:
    context: CliContext = ctx.obj
    credential = ChatCredential(id=chat_id, name=name, version=version, expires=expires)
    token = _chat_manager(context, domain).issue(credential)
    _emit_token(context, f"{domain.value}_token", token)


@chat_app.command("verify")
def chat_verify(
    ctx: typer.Context,
    token: str = typer.Argument(..., help="Serialized chat or auth token"),
    domain: Domain = typer.Option(Domain.chat, "--domain", help="Signing domain"),
    current_version: int = typer.Option(
        0, "--current-version", help="Current revocation version of the chat"
    ),
) -> None:
    context: CliContext = ctx.obj
    result = _chat_manager(context, domain).parse_and_verify(
        token, version_lookup=lambda _: current_version
    )
    if not result.ok:
        _reject(context, result.error)
    _show_credential(context, result.unwrap(), "Verified chat")


@chat_app.command("inspect")
def chat_inspect(
    ctx: typer.Context,
    token: str = typer.Argument(..., help="Serialized chat or auth token"),
) -> None:
    """Decode a token without checking its signature."""
    context: CliContext = ctx.obj
    result = ChatTokenManager.parse(token)
    if not result.ok:
        _reject(context, result.error)
    _show_credential(context, result.unwrap(), "Chat (unverified)")


@auth_app.command("exchange")
def auth_exchange(
    ctx: typer.Context,
    token: str = typer.Argument(..., help="Auth token sent by the bot"),
    expires: int | None = typer.Option(None, "--expires", help="Expiry, epoch milliseconds"),
) -> None:
    context: CliContext = ctx.obj
    result = exchange_auth_token(
        ChatTokenManager(context.keys.auth),
        ChatTokenManager(context.keys.chat),
        token,
        expires=expires,
    )
    if not result.ok:
        _reject(context, result.error)
    _emit_token(context, "chat_token", result.unwrap())
