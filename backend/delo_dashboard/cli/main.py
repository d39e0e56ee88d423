"""CLI entrypoint for the DeloMemory dashboard."""

from __future__ import annotations

import json
import os
from typing import Optional

import requests
import typer

app = typer.Typer(name="delodash", help="DeloMemory dashboard command-line interface")
keys_app = typer.Typer(name="keys", help="Manage your own API keys")
users_app = typer.Typer(name="users", help="Administer users (L4 only)")
app.add_typer(keys_app, name="keys")
app.add_typer(users_app, name="users")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("DELO_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _resolve_key(override: Optional[str]) -> str:
    key = override or os.environ.get("DELO_API_KEY")
    if not key:
        typer.echo("No API key: pass --api-key or set DELO_API_KEY", err=True)
        raise typer.Exit(code=2)
    return key


def _request(
    method: str,
    path: str,
    host: Optional[str] = None,
    api_key: Optional[str] = None,
    **kwargs,
) -> requests.Response:
    url = f"{_resolve_host(host)}{path}"
    headers = {"Authorization": f"Bearer {_resolve_key(api_key)}"}
    resp = requests.request(method, url, timeout=60, headers=headers, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(resp: requests.Response) -> None:
    typer.echo(json.dumps(resp.json(), indent=2))


HostOption = typer.Option(None, "--host", help="Override dashboard host")
KeyOption = typer.Option(None, "--api-key", help="API key (defaults to DELO_API_KEY)")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the dashboard API with uvicorn."""
    import uvicorn

    uvicorn.run("delo_dashboard.app:app", host=host, port=port, reload=reload)


@app.command("init-admin")
def init_admin(
    user_id: str = typer.Argument(..., help="User id of the first administrator"),
    name: str = typer.Option(..., "--name", help="Display name"),
) -> None:
    """Create the first L4 key directly in the local database."""
    from delo_dashboard.api.dependencies import get_database
    from delo_dashboard.auth.keys import ADMIN_LEVEL, KeyService
    from delo_dashboard.db.tables import TableClient

    service = KeyService(TableClient(get_database()))
    if service.list_all_keys():
        typer.echo("Keys already exist; add users through the API instead.", err=True)
        raise typer.Exit(code=1)
    issued = service.add_user(user_id, name, ADMIN_LEVEL, created_by="cli")
    typer.echo(json.dumps({"user_id": issued.record["user_id"], "key": issued.key}, indent=2))


@app.command()
def overview(host: Optional[str] = HostOption, api_key: Optional[str] = KeyOption) -> None:
    """Headline usage numbers."""
    _echo(_request("GET", "/api/overview", host=host, api_key=api_key))


@app.command()
def costs(host: Optional[str] = HostOption, api_key: Optional[str] = KeyOption) -> None:
    """Estimated spend over the last 30 days."""
    _echo(_request("GET", "/api/costs", host=host, api_key=api_key))


@app.command()
def health(host: Optional[str] = HostOption, api_key: Optional[str] = KeyOption) -> None:
    """Corpus health report (L4 only)."""
    _echo(_request("GET", "/api/settings/health", host=host, api_key=api_key))


@app.command()
def search(
    q: str = typer.Argument(..., help="Query text"),
    tool: str = typer.Option("search_knowledge", "--tool", help="MCP tool name to attribute the query to"),
    domain: Optional[str] = typer.Option(None, "--domain", help="Restrict to one domain"),
    top_k: int = typer.Option(20, "--top-k", help="Maximum results"),
    host: Optional[str] = HostOption,
    api_key: Optional[str] = KeyOption,
) -> None:
    """Preview chunks visible at your access level."""
    payload: dict[str, object] = {"query": q, "tool": tool, "top_k": top_k}
    if domain:
        payload["domain"] = domain
    _echo(_request("POST", "/api/search", host=host, api_key=api_key, json=payload))


@keys_app.command("list")
def list_keys(host: Optional[str] = HostOption, api_key: Optional[str] = KeyOption) -> None:
    """List your keys."""
    _echo(_request("GET", "/api/keys", host=host, api_key=api_key))


@keys_app.command("create")
def create_key(
    name: str = typer.Argument(..., help="Display name"),
    description: Optional[str] = typer.Option(None, "--description", help="What the key is for"),
    host: Optional[str] = HostOption,
    api_key: Optional[str] = KeyOption,
) -> None:
    """Create a key at your current access level. The key is printed once."""
    body = {"display_name": name, "description": description}
    _echo(_request("POST", "/api/keys", host=host, api_key=api_key, json=body))


@keys_app.command("revoke")
def revoke_key(
    key_id: int = typer.Argument(..., help="Key id"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Why the key is revoked"),
    host: Optional[str] = HostOption,
    api_key: Optional[str] = KeyOption,
) -> None:
    """Revoke one of your keys."""
    _echo(_request("POST", f"/api/keys/{key_id}/revoke", host=host, api_key=api_key, json={"reason": reason}))


@users_app.command("list")
def list_users(host: Optional[str] = HostOption, api_key: Optional[str] = KeyOption) -> None:
    """List every key grouped by access level."""
    _echo(_request("GET", "/api/settings/keys", host=host, api_key=api_key))


@users_app.command("add")
def add_user(
    user_id: str = typer.Argument(..., help="User id (email local part)"),
    name: str = typer.Option(..., "--name", help="Display name"),
    level: int = typer.Option(2, "--level", min=1, max=4, help="Access level 1-4"),
    host: Optional[str] = HostOption,
    api_key: Optional[str] = KeyOption,
) -> None:
    """Add a user with a fresh key."""
    body = {"user_id": user_id, "display_name": name, "access_level": level}
    _echo(_request("POST", "/api/settings/users", host=host, api_key=api_key, json=body))


@users_app.command("set-level")
def set_level(
    user_id: str = typer.Argument(..., help="User id"),
    level: int = typer.Argument(..., min=1, max=4, help="Access level 1-4"),
    host: Optional[str] = HostOption,
    api_key: Optional[str] = KeyOption,
) -> None:
    """Change a user's access level."""
    body = {"access_level": level}
    _echo(_request("PATCH", f"/api/settings/users/{user_id}", host=host, api_key=api_key, json=body))


@users_app.command("remove")
def remove_user(
    user_id: str = typer.Argument(..., help="User id"),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
    host: Optional[str] = HostOption,
    api_key: Optional[str] = KeyOption,
) -> None:
    """Remove a user and all of their keys."""
    if not yes:
        typer.confirm(f'Remove user "{user_id}"? This action cannot be undone.', abort=True)
    _echo(_request("DELETE", f"/api/settings/users/{user_id}", host=host, api_key=api_key))


if __name__ == "__main__":
    app()
