"""Predefined rule categories.

The table is built once at import time and only exposed through read-only
mappings of frozen records. Order matters: category rules are emitted in
table order and routing is first-match.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .constants import BUILTIN_GROUPS, SENTINELS
from .models import RuleCategory

PROXY = 'proxy'
DIRECT = 'direct'
REJECT = 'reject'

_TABLE = (
    RuleCategory(
        id='ad-block', outbound='Ad Block', policy=REJECT,
        domains=(
            'doubleclick.net', 'googleadservices.com', 'googlesyndication.com', 'adservice.google.com',
            'app-measurement.com', 'adnxs.com', 'adsrvr.org', 'ads.yahoo.com', 'scorecardresearch.com',
            'taboola.com', 'outbrain.com', 'criteo.com',
        ),
    ),
    RuleCategory(
        id='private', outbound='Private', policy=DIRECT,
        domains=('localhost', 'local', 'lan'),
        ip_cidrs=(
            '10.0.0.0/8', '100.64.0.0/10', '127.0.0.0/8', '169.254.0.0/16', '172.16.0.0/12',
            '192.168.0.0/16', '::1/128', 'fc00::/7', 'fe80::/10',
        ),
    ),
    RuleCategory(
        id='ai-services', outbound='AI Services', policy=PROXY,
        domains=(
            'openai.com', 'chatgpt.com', 'oaistatic.com', 'oaiusercontent.com', 'anthropic.com',
            'claude.ai', 'gemini.google.com', 'perplexity.ai',
        ),
    ),
    RuleCategory(
        id='youtube', outbound='YouTube', policy=PROXY,
        domains=('youtube.com', 'youtu.be', 'googlevideo.com', 'ytimg.com', 'youtube-nocookie.com', 'youtubei.googleapis.com'),
    ),
    RuleCategory(
        id='google', outbound='Google', policy=PROXY,
        domains=(
            'google.com', 'googleapis.com', 'gstatic.com', 'googleusercontent.com', 'ggpht.com',
            'gvt1.com', 'gvt2.com', 'gmail.com', 'withgoogle.com',
        ),
    ),
    RuleCategory(
        id='foreign-media', outbound='Foreign Media', policy=PROXY,
        domains=(
            'netflix.com', 'nflxvideo.net', 'nflximg.net', 'nflxext.com', 'disneyplus.com', 'hulu.com',
            'max.com', 'hbomax.com', 'primevideo.com', 'spotify.com', 'scdn.co', 'twitch.tv',
        ),
    ),
    RuleCategory(
        id='telegram', outbound='Telegram', policy=PROXY,
        domains=('telegram.org', 't.me', 'telegra.ph', 'telesco.pe', 'tdesktop.com'),
        ip_cidrs=(
            '91.108.4.0/22', '91.108.8.0/22', '91.108.12.0/22', '91.108.16.0/22', '91.108.56.0/22',
            '149.154.160.0/20', '2001:67c:4e8::/48', '2001:b28:f23d::/48', '2001:b28:f23f::/48',
        ),
    ),
    RuleCategory(
        id='github', outbound='GitHub', policy=PROXY,
        domains=('github.com', 'github.io', 'githubusercontent.com', 'githubassets.com', 'ghcr.io'),
    ),
    RuleCategory(
        id='microsoft', outbound='Microsoft', policy=PROXY,
        domains=('microsoft.com', 'live.com', 'office.com', 'office365.com', 'outlook.com', 'msn.com', 'bing.com', 'windows.net'),
    ),
    RuleCategory(
        id='apple', outbound='Apple', policy=DIRECT,
        domains=('apple.com', 'icloud.com', 'icloud-content.com', 'mzstatic.com', 'cdn-apple.com', 'apple-cloudkit.com'),
    ),
    RuleCategory(
        id='social-media', outbound='Social Media', policy=PROXY,
        domains=(
            'facebook.com', 'fbcdn.net', 'instagram.com', 'cdninstagram.com', 'twitter.com', 'x.com',
            'twimg.com', 'whatsapp.com', 'whatsapp.net', 'reddit.com', 'redditmedia.com', 'discord.com',
            'discord.gg', 'discordapp.com',
        ),
    ),
    RuleCategory(
        id='gaming', outbound='Gaming', policy=PROXY,
        domains=(
            'steampowered.com', 'steamcommunity.com', 'steamstatic.com', 'epicgames.com', 'playstation.com',
            'playstation.net', 'xboxlive.com', 'nintendo.net', 'ea.com',
        ),
    ),
    RuleCategory(
        id='bilibili', outbound='Bilibili', policy=DIRECT,
        domains=('bilibili.com', 'bilivideo.com', 'hdslb.com', 'biliapi.net'),
    ),
    RuleCategory(
        id='domestic', outbound='Domestic', policy=DIRECT,
        domains=(
            'cn', 'baidu.com', 'qq.com', 'taobao.com', 'tmall.com', 'jd.com', 'alipay.com', 'weibo.com',
            '163.com', 'zhihu.com', 'bytedance.com', 'douyin.com',
        ),
    ),
)

CATEGORIES: Mapping[str, RuleCategory] = MappingProxyType({c.id: c for c in _TABLE})

PRESETS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    'minimal': ('ad-block', 'google', 'foreign-media', 'telegram'),
    'balanced': (
        'ad-block', 'private', 'ai-services', 'youtube', 'google', 'foreign-media', 'telegram',
        'github', 'microsoft', 'apple', 'domestic',
    ),
    'comprehensive': tuple(c.id for c in _TABLE),
})

# Names used by the original web form
_LEGACY_NAMES = MappingProxyType({
    '广告拦截': 'ad-block',
    '谷歌服务': 'google',
    '国外媒体': 'foreign-media',
    '电报消息': 'telegram',
})

# Names the Clash core treats as built-in policies
CLASH_BUILTINS = ('DIRECT', 'REJECT', 'REJECT-DROP', 'PASS', 'GLOBAL', 'COMPATIBLE')


def normalize_name(name: str) -> str:
    s = name.strip()
    if s in _LEGACY_NAMES:
        return _LEGACY_NAMES[s]
    return '-'.join(s.lower().replace('_', ' ').replace('-', ' ').split())


def lookup(name: str) -> Optional[RuleCategory]:
    """Find a category by id, group name or legacy name."""
    return CATEGORIES.get(normalize_name(name))


def table_index(category_id: str) -> int:
    return _ORDER[category_id]


def reserved_names() -> Tuple[str, ...]:
    return _RESERVED


_ORDER = MappingProxyType({c.id: i for i, c in enumerate(_TABLE)})
_RESERVED = SENTINELS + BUILTIN_GROUPS + CLASH_BUILTINS + tuple(c.outbound for c in _TABLE)
