from __future__ import annotations

import asyncio
from urllib.parse import urlsplit

import httpx

from chatembed.cache import RequestCache
from chatembed.config import EmbedConfig, FetchSettings
from chatembed.families import ContentFamily, classify
from chatembed.resolvers import (
    DEFAULT_RESOLVERS,
    Outcome,
    ResolverRegistry,
    detect_twitch,
    detect_youtube,
    extract_app_id,
    extract_invite_code,
    read_page_meta,
)

_KOFI_PAGE = """
<html><head>
<title>Fallback title</title>
<meta property="og:title" content="Buy the coven a coffee">
<meta property="og:description" content="Support our streams">
<meta property="og:image" content="https://storage.ko-fi.com/cover.png">
<meta property="og:site_name" content="Ko-fi">
</head><body></body></html>
"""


class _Provider:
    """Fake upstream that records every request it answers."""

    def __init__(self, routes) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        if callable(route):
            return route(request)
        return route

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


async def _noop_sleep(delay: float) -> None:
    await asyncio.sleep(0)


def _registry(provider: _Provider) -> tuple[ResolverRegistry, RequestCache]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    cache = RequestCache(FetchSettings(), client=client, sleep=_noop_sleep)
    return ResolverRegistry(cache), cache


def test_classify_checks_images_before_hosts() -> None:
    assert classify("https://cdn.discordapp.com/attachments/1/2/cat.png") is ContentFamily.IMAGE
    assert classify("https://youtu.be/abc123") is ContentFamily.YOUTUBE
    assert classify("https://www.twitch.tv/somestreamer") is ContentFamily.TWITCH
    assert classify("https://discord.gg/xyz") is ContentFamily.DISCORD
    assert classify("https://store.steampowered.com/app/100/") is ContentFamily.STEAM
    assert classify("https://ko-fi.com/coven") is ContentFamily.KOFI
    assert classify("https://example.org/page") is ContentFamily.DEFAULT
    assert classify("ftp://example.org/file") is ContentFamily.DEFAULT
    assert (
        classify("https://i.imgur.com/cat.gif", include_images=False)
        is ContentFamily.DEFAULT
    )


def test_url_shape_detection() -> None:
    assert detect_youtube(urlsplit("https://youtu.be/abc123")).id == "abc123"
    assert detect_youtube(urlsplit("https://www.youtube.com/watch?v=q1w2e3")).id == "q1w2e3"
    assert detect_youtube(urlsplit("https://youtube.com/shorts/abcdef12")).kind == "video"
    playlist = detect_youtube(urlsplit("https://youtube.com/watch?v=a&list=PL123"))
    assert (playlist.kind, playlist.id) == ("playlist", "PL123")
    channel = detect_youtube(urlsplit("https://youtube.com/@coven"))
    assert (channel.kind, channel.id) == ("channel", "@coven")

    assert detect_twitch(urlsplit("https://clips.twitch.tv/FunnyClip-x1")).kind == "clip"
    assert detect_twitch(urlsplit("https://twitch.tv/coven/clip/Slug")).id == "Slug"
    assert detect_twitch(urlsplit("https://twitch.tv/videos/12345")).kind == "video"
    assert detect_twitch(urlsplit("https://twitch.tv/subs/coven")).kind == "sub"
    assert detect_twitch(urlsplit("https://twitch.tv/coven")).kind == "channel"

    assert extract_invite_code(urlsplit("https://discord.gg/xyz")) == "xyz"
    assert extract_invite_code(urlsplit("https://discord.com/invite/xyz")) == "xyz"
    assert extract_invite_code(urlsplit("https://discord.com/channels/1/2")) is None

    assert extract_app_id(urlsplit("https://store.steampowered.com/app/100/")) == "100"
    assert extract_app_id(urlsplit("https://store.steampowered.com/search")) is None


def test_youtube_video_resolves_with_one_provider_call() -> None:
    provider = _Provider(
        {
            "/youtube/video": httpx.Response(
                200,
                json={
                    "title": "Speedrun",
                    "channel_title": "The Coven",
                    "thumbnail": {"maxres": "https://i.ytimg.com/abc123.jpg"},
                    "view": 4200,
                },
            )
        }
    )

    async def run():
        registry, cache = _registry(provider)
        resolution = await registry.resolve_outcome("https://youtu.be/abc123", EmbedConfig())
        await cache.aclose()
        return resolution

    resolution = asyncio.run(run())
    assert resolution.outcome is Outcome.RESOLVED
    assert resolution.family is ContentFamily.YOUTUBE
    content = resolution.content
    assert content.kind == "video"
    assert content.title == "Speedrun"
    assert content.subtitle == "The Coven"
    assert dict(content.stats) == {"views": "4200"}
    assert provider.paths() == ["/youtube/video"]
    assert provider.requests[0].url.params["id"] == "abc123"


def test_same_discord_invite_concurrently_hits_provider_once() -> None:
    provider = _Provider(
        {
            "/api/v9/invites/xyz": httpx.Response(
                200,
                json={
                    "guild": {"id": "1", "name": "The Coven", "icon": "ic"},
                    "approximate_member_count": 321,
                },
            )
        }
    )

    async def run():
        registry, cache = _registry(provider)
        config = EmbedConfig()
        results = await asyncio.gather(
            registry.resolve("https://discord.gg/xyz", config),
            registry.resolve("https://discord.gg/xyz", config),
        )
        await cache.aclose()
        return results

    first, second = asyncio.run(run())
    assert len(provider.requests) == 1
    assert provider.requests[0].url.params["with_counts"] == "true"
    assert first == second
    assert first.title == "The Coven"
    assert first.thumbnail == "https://cdn.discordapp.com/icons/1/ic.png"
    assert dict(first.stats)["members"] == "321"


def test_disabled_family_declines_before_any_network_call() -> None:
    provider = _Provider({})

    async def run():
        registry, cache = _registry(provider)
        config = EmbedConfig().with_family("steam", False)
        resolution = await registry.resolve_outcome(
            "https://store.steampowered.com/app/100/", config
        )
        await cache.aclose()
        return resolution

    resolution = asyncio.run(run())
    assert resolution.outcome is Outcome.DECLINED
    assert resolution.content is None
    assert provider.requests == []


def test_all_links_switch_declines_everything() -> None:
    async def run():
        registry, cache = _registry(_Provider({}))
        config = EmbedConfig(enable_all_links=False)
        resolution = await registry.resolve_outcome("https://example.org/", config)
        await cache.aclose()
        return resolution

    assert asyncio.run(run()).outcome is Outcome.DECLINED


def test_provider_failure_degrades_to_failed_outcome() -> None:
    provider = _Provider({"/youtube/video": httpx.Response(503)})

    async def run():
        registry, cache = _registry(provider)
        resolution = await registry.resolve_outcome("https://youtu.be/abc123", EmbedConfig())
        await cache.aclose()
        return resolution

    resolution = asyncio.run(run())
    assert resolution.outcome is Outcome.FAILED
    assert resolution.content is None
    assert "503" in resolution.detail
    assert len(provider.requests) == 3


def test_empty_provider_answer_is_distinct_from_decline() -> None:
    provider = _Provider({"/api/v9/invites/gone": httpx.Response(200, json={"code": 10006})})

    async def run():
        registry, cache = _registry(provider)
        resolution = await registry.resolve_outcome("https://discord.gg/gone", EmbedConfig())
        await cache.aclose()
        return resolution

    resolution = asyncio.run(run())
    assert resolution.outcome is Outcome.EMPTY
    assert resolution.family is ContentFamily.DISCORD


def test_crashing_resolver_is_contained() -> None:
    async def broken(url, ctx):
        raise RuntimeError("boom")

    async def run():
        registry, cache = _registry(_Provider({}))
        registry.register(ContentFamily.DEFAULT, broken)
        resolution = await registry.resolve_outcome("https://example.org/x", EmbedConfig())
        await cache.aclose()
        return resolution

    resolution = asyncio.run(run())
    assert resolution.outcome is Outcome.FAILED
    assert "boom" in resolution.detail


def test_steam_app_details() -> None:
    provider = _Provider(
        {
            "/api/appdetails": httpx.Response(
                200,
                json={
                    "100": {
                        "success": True,
                        "data": {
                            "name": "Half-Life",
                            "short_description": "Classic",
                            "is_free": False,
                            "price_overview": {"final_formatted": "9,75€"},
                            "header_image": "https://cdn.steam/100.jpg",
                        },
                    }
                },
            )
        }
    )

    async def run():
        registry, cache = _registry(provider)
        content = await registry.resolve(
            "https://store.steampowered.com/app/100/", EmbedConfig()
        )
        await cache.aclose()
        return content

    content = asyncio.run(run())
    assert content.title == "Half-Life"
    assert dict(content.stats) == {"price": "9,75€"}
    assert provider.requests[0].url.params["appids"] == "100"


def test_meta_page_resolution_and_meta_flag() -> None:
    provider = _Provider({"/coven": httpx.Response(200, text=_KOFI_PAGE)})

    async def run():
        registry, cache = _registry(provider)
        enabled = await registry.resolve("https://ko-fi.com/coven", EmbedConfig())
        disabled = await registry.resolve_outcome(
            "https://ko-fi.com/coven", EmbedConfig().with_family("meta", False)
        )
        await cache.aclose()
        return enabled, disabled

    enabled, disabled = asyncio.run(run())
    assert enabled.family is ContentFamily.KOFI
    assert enabled.title == "Buy the coven a coffee"
    assert enabled.platform_name == "Ko-fi"
    assert enabled.thumbnail == "https://storage.ko-fi.com/cover.png"
    assert disabled.outcome is Outcome.DECLINED
    assert len(provider.requests) == 1


def test_read_page_meta_falls_back_to_document_title() -> None:
    meta = read_page_meta(
        "<html><head><title> Plain page </title></head></html>",
        urlsplit("https://www.example.org/a"),
    )
    assert meta.title == "Plain page"
    assert meta.description == "No description available"
    assert meta.image is None
    assert meta.site_name == "example.org"


def test_images_and_unknown_links_resolve_without_network() -> None:
    provider = _Provider({})

    async def run():
        registry, cache = _registry(provider)
        image = await registry.resolve("https://i.imgur.com/cat.png", EmbedConfig())
        generic = await registry.resolve("https://example.org/article", EmbedConfig())
        await cache.aclose()
        return image, generic

    image, generic = asyncio.run(run())
    assert image.family is ContentFamily.IMAGE
    assert image.title == "cat.png"
    assert generic.family is ContentFamily.DEFAULT
    assert generic.thumbnail == "https://example.org/favicon.ico"
    assert provider.requests == []


def test_every_classifiable_family_has_a_default_resolver() -> None:
    urls = [
        "https://i.imgur.com/cat.png",
        "https://youtu.be/abc123",
        "https://twitch.tv/coven",
        "https://discord.gg/xyz",
        "https://store.steampowered.com/app/100/",
        "https://fr.gamesplanet.com/game/x",
        "https://ko-fi.com/coven",
        "https://www.eneba.com/x",
        "https://example.org/",
    ]
    families = {classify(url) for url in urls}

    assert families == set(DEFAULT_RESOLVERS)
    assert ContentFamily.META not in DEFAULT_RESOLVERS
