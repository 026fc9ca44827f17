import asyncio
import json
from collections.abc import Sequence
from dataclasses import replace

import click

from .errors import ChatEmbedError, ConfigError
from .families import ContentFamily

FAMILY_NAMES = [family.value for family in ContentFamily]


class OrderedGroup(click.Group):
    def __init__(self, *args, commands_order: Sequence[str] | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._commands_order = list(commands_order or [])

    def list_commands(self, ctx: click.Context) -> list[str]:
        ordered = [name for name in self._commands_order if name in self.commands]
        remaining = [
            name
            for name in super().list_commands(ctx)
            if name not in self._commands_order
        ]
        return ordered + remaining


def _load_settings(ctx: click.Context, overrides=None):
    from .config import build_settings

    try:
        settings = build_settings(ctx.obj["config_path"], overrides=overrides)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    embed = settings.embed
    for name in ctx.obj["disable"]:
        embed = embed.with_family(name, False)
    return replace(settings, embed=embed)


@click.group(
    cls=OrderedGroup,
    commands_order=["classify", "resolve", "replay"],
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML settings file (defaults to $CHATEMBED_CONFIG).",
)
@click.option(
    "--disable",
    multiple=True,
    type=click.Choice(FAMILY_NAMES, case_sensitive=False),
    help="Disable embeds for a content family. Repeatable.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx, config_path, disable, verbose):
    """
    chatembed - live chat link embedder
    """
    from .runtime import configure_logging, set_verbose_logging

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["disable"] = tuple(disable)
    set_verbose_logging(verbose)
    configure_logging(verbose)


@cli.command("classify")
@click.argument("urls", nargs=-1, required=True)
@click.pass_context
def classify_cmd(ctx, urls):
    """
    Print the content family each URL dispatches to.
    """
    from .cache import RequestCache
    from .resolvers import ResolverRegistry, is_family_enabled

    settings = _load_settings(ctx)
    registry = ResolverRegistry(RequestCache(settings.fetch))
    for url in urls:
        family = registry.classify(url, settings.embed)
        suffix = "" if is_family_enabled(family, settings.embed) else " (disabled)"
        click.echo(f"{url}\t{family.value}{suffix}")


async def _resolve_urls(urls, settings):
    from .cache import RequestCache
    from .resolvers import ResolverRegistry

    cache = RequestCache(settings.fetch)
    registry = ResolverRegistry(cache)
    try:
        results = []
        for url in urls:
            resolution = await registry.resolve_outcome(url, settings.embed)
            entry = {
                "url": url,
                "family": resolution.family.value,
                "outcome": resolution.outcome.value,
            }
            if resolution.detail:
                entry["detail"] = resolution.detail
            if resolution.content is not None:
                entry["content"] = resolution.content.to_dict()
            results.append(entry)
        return results
    finally:
        await cache.aclose()


@cli.command("resolve")
@click.argument("urls", nargs=-1, required=True)
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["yaml", "json"], case_sensitive=False),
    default="yaml",
    show_default=True,
    help="Output format.",
)
@click.pass_context
def resolve_cmd(ctx, urls, output_format):
    """
    Resolve URLs through the cached fetch layer and print the content.
    """
    settings = _load_settings(ctx)
    results = asyncio.run(_resolve_urls(urls, settings))
    if output_format.lower() == "json":
        click.echo(json.dumps(results, indent=2, ensure_ascii=False))
        return
    import yaml

    click.echo(yaml.safe_dump(results, sort_keys=False, allow_unicode=True).rstrip())


@cli.command("replay")
@click.argument("script_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--raw",
    is_flag=True,
    help="Print the container HTML unformatted.",
)
@click.pass_context
def replay_cmd(ctx, script_path, raw):
    """
    Replay a YAML feed script through the full pipeline and print the feed.
    """
    from .replay import load_script, run_script

    try:
        script = load_script(script_path)
    except ChatEmbedError as exc:
        raise click.ClickException(str(exc)) from exc
    settings = _load_settings(ctx, overrides=script.settings)
    try:
        html = asyncio.run(run_script(script, settings))
    except ChatEmbedError as exc:
        raise click.ClickException(str(exc)) from exc
    if raw:
        click.echo(html)
        return
    from bs4 import BeautifulSoup

    click.echo(BeautifulSoup(html, "html.parser").prettify().rstrip())


def main():
    cli()


if __name__ == "__main__":
    main()
