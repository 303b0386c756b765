"""CLI entrypoint for Nexus."""

from __future__ import annotations

import json
import os
from typing import List, Optional

import requests
import typer

app = typer.Typer(name="nexus", help="Nexus social index command-line interface")
sources_app = typer.Typer(name="sources")
app.add_typer(sources_app, name="sources")

DEFAULT_HOST = "http://127.0.0.1:5180"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("NEXUS_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
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


@sources_app.command("list")
def list_sources(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List indexed archives."""
    _echo(_request("GET", "/sources", host=host))


@sources_app.command("add")
def add_source(
    url: str = typer.Argument(..., help="Archive URL or key"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Start indexing an archive."""
    _echo(_request("POST", "/sources", host=host, json={"url": url}))


@sources_app.command("remove")
def remove_source(
    url: str = typer.Argument(..., help="Archive URL or key"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Stop indexing an archive and drop its records."""
    _echo(_request("DELETE", "/sources", host=host, params={"url": url}))


@app.command()
def profile(
    archive: str = typer.Argument(..., help="Archive URL"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show an archive's profile."""
    _echo(_request("GET", "/profiles", host=host, params={"archive": archive}))


@app.command()
def bookmarks(
    author: Optional[str] = typer.Option(None, "--author", help="Only bookmarks by this archive"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Require a tag (repeatable)"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum results"),
    reverse: bool = typer.Option(False, "--reverse", help="Reverse index order"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List bookmarks."""
    params: dict[str, object] = {"reverse": reverse}
    if author:
        params["author"] = author
    if tag:
        params["tag"] = tag
    if limit is not None:
        params["limit"] = limit
    _echo(_request("GET", "/bookmarks", host=host, params=params))


@app.command()
def posts(
    author: Optional[str] = typer.Option(None, "--author", help="Only posts by this archive"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum results"),
    reverse: bool = typer.Option(True, "--reverse/--oldest-first", help="Newest first"),
    replies: bool = typer.Option(False, "--replies", help="Include one level of replies"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List posts."""
    params: dict[str, object] = {"reverse": reverse, "fetch_author": True, "fetch_replies": replies}
    if author:
        params["author"] = author
    if limit is not None:
        params["limit"] = limit
    _echo(_request("GET", "/posts", host=host, params=params))


@app.command()
def votes(
    subject: str = typer.Argument(..., help="Subject URL"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Tally the votes on a subject."""
    _echo(_request("GET", "/votes", host=host, params={"subject": subject}))


if __name__ == "__main__":
    app()
