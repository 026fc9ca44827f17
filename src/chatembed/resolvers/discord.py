from __future__ import annotations

import re
from urllib.parse import SplitResult

from ..families import ContentFamily
from .base import ResolvedContent, ResolverContext, count_value, dig, text_value

_DISCORD_API_BASE = "https://discord.com/api/v9"
_DISCORD_CDN = "https://cdn.discordapp.com"
_INVITE_PATH_RE = re.compile(r"^/(?:invite/)?([a-zA-Z0-9_-]+)/?$")


def extract_invite_code(url: SplitResult) -> str | None:
    host = (url.hostname or "").lower()
    path = url.path
    if host.endswith("discord.com") and not path.startswith("/invite/"):
        return None
    match = _INVITE_PATH_RE.match(path)
    if not match:
        return None
    return match.group(1)


async def resolve_discord(url: SplitResult, ctx: ResolverContext) -> ResolvedContent | None:
    code = extract_invite_code(url)
    if code is None:
        return None

    data = await ctx.fetch_json(
        f"{_DISCORD_API_BASE}/invites/{code}",
        params={"with_counts": "true"},
        label="discord invite",
    )
    guild = dig(data, "guild")
    if not guild:
        return None

    icon = None
    if guild.get("id") and guild.get("icon"):
        icon = f"{_DISCORD_CDN}/icons/{guild['id']}/{guild['icon']}.png"

    stats = [("members", count_value(data.get("approximate_member_count")))]
    inviter = text_value(dig(data, "inviter", "global_name"))
    if inviter:
        stats.append(("invited by", inviter))

    return ResolvedContent(
        family=ContentFamily.DISCORD,
        kind="invite",
        url=url.geturl(),
        platform_name="Discord",
        title=text_value(guild.get("name")),
        description=text_value(guild.get("description")),
        thumbnail=icon,
        stats=tuple(stats),
    )
