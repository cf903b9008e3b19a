"""Command line access to the transformation pipeline."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
from rich.console import Console

from libmedium.dependencies import (
    close_http_client,
    get_post_assembler,
    get_renderer,
    get_route_resolver,
)
from libmedium.errors import LibmediumError
from libmedium.services.route_resolver import extract_post_id_from_url

console = Console()
error_console = Console(stderr=True)


def _post_id_or_exit(value: str) -> str:
    try:
        return extract_post_id_from_url(value)
    except LibmediumError as exc:
        error_console.print(f"[red]{exc.public_message}[/red]")
        raise SystemExit(2) from exc


async def _canonical_path(post_id: str) -> str:
    try:
        target = await get_route_resolver().canonical_redirect(post_id)
        return target.path
    finally:
        await close_http_client()


async def _render(post_id: str) -> str:
    try:
        document = await get_post_assembler().assemble(post_id)
        return get_renderer().render_post(document)
    finally:
        await close_http_client()


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """libmedium - re-render Medium posts as self-hosted HTML."""


@main.command("post-id")
@click.argument("url")
def post_id(url: str) -> None:
    """Print the post id encoded in a Medium URL or slug."""
    console.print(_post_id_or_exit(url))


@main.command()
@click.argument("url")
def redirect(url: str) -> None:
    """Print the canonical local path for a post."""
    resolved_id = _post_id_or_exit(url)
    try:
        path = asyncio.run(_canonical_path(resolved_id))
    except LibmediumError as exc:
        error_console.print(f"[red]{exc.public_message}[/red] ({type(exc).__name__})")
        raise SystemExit(1) from exc
    console.print(path)


@main.command()
@click.argument("url")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the page here instead of stdout.",
)
def render(url: str, output: Path | None) -> None:
    """Fetch a post and render it to HTML."""
    resolved_id = _post_id_or_exit(url)
    try:
        page = asyncio.run(_render(resolved_id))
    except LibmediumError as exc:
        error_console.print(f"[red]{exc.public_message}[/red] ({type(exc).__name__})")
        raise SystemExit(1) from exc

    if output is None:
        click.echo(page)
        return
    output.write_text(page, encoding="utf-8")
    console.print(f"Wrote [cyan]{output}[/cyan]")


if __name__ == "__main__":
    main()
