"""Normalized data model shared by the parser, resolver, synthesizer and emitters."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

NETWORKS = ('tcp', 'ws', 'grpc', 'http', 'h2', 'httpupgrade')


@dataclass(frozen=True)
class Transport:
    network: str = 'tcp'
    path: str = ''
    host: str = ''
    service_name: str = ''


@dataclass(frozen=True)
class TLSOptions:
    enabled: bool = False
    server_name: str = ''
    insecure: bool = False
    alpn: Tuple[str, ...] = ()
    fingerprint: str = ''
    reality_public_key: str = ''
    reality_short_id: str = ''

    @property
    def reality(self) -> bool:
        return bool(self.reality_public_key)


@dataclass(frozen=True)
class ProxyNode:
    protocol: str
    server: str
    port: int
    tag: str
    uuid: str = ''
    password: str = ''
    username: str = ''
    # shadowsocks cipher
    method: str = ''
    # vmess
    alter_id: int = 0
    cipher: str = 'auto'
    # vless
    flow: str = ''
    transport: Transport = field(default_factory=Transport)
    tls: TLSOptions = field(default_factory=TLSOptions)
    # hysteria2
    obfs: str = ''
    obfs_password: str = ''
    up_mbps: int = 0
    down_mbps: int = 0
    # tuic
    congestion_control: str = ''
    udp_relay_mode: str = ''
    # shadowsocks SIP003
    plugin: str = ''
    plugin_opts: str = ''


class RuleKind(str, Enum):
    CATEGORY = 'category'
    CUSTOM_DOMAIN = 'custom-domain'
    CUSTOM_IP = 'custom-ip'


@dataclass(frozen=True)
class RoutingRule:
    kind: RuleKind
    target: str
    domains: Tuple[str, ...] = ()
    ip_cidrs: Tuple[str, ...] = ()
    source: str = 'custom'

    def __post_init__(self):
        if not self.domains and not self.ip_cidrs:
            raise ValueError('routing rule needs at least one domain or IP match')

    @property
    def is_custom(self) -> bool:
        return self.kind is not RuleKind.CATEGORY


@dataclass(frozen=True)
class RuleCategory:
    id: str
    outbound: str
    policy: str
    domains: Tuple[str, ...] = ()
    ip_cidrs: Tuple[str, ...] = ()


class Strategy(str, Enum):
    MANUAL = 'manual'
    LATENCY = 'automatic-latency'
    FALLBACK = 'fallback-chain'


@dataclass(frozen=True)
class ProxyGroup:
    name: str
    strategy: Strategy
    members: Tuple[str, ...]


@dataclass(frozen=True)
class BuildWarning:
    stage: str
    item: str
    message: str

    def __str__(self) -> str:
        if self.item:
            return f"[{self.stage}] {self.message}: {self.item}"
        return f"[{self.stage}] {self.message}"


CustomRule = Mapping[str, Any]
Selection = Union[None, str, Sequence[str]]


@dataclass(frozen=True)
class BuildRequest:
    subscription: str
    selected_rules: Selection = None
    custom_rules: Tuple[CustomRule, ...] = ()
    group_by_country: bool = False
    fallback_group: bool = False

    @classmethod
    def from_params(cls, config: str, selected_rules: Optional[str] = None,
                    custom_rules: Optional[str] = None, **options) -> 'BuildRequest':
        """Build a request from query-string style parameters.

        ``selected_rules`` is either a preset alias or a JSON encoded list of
        category ids; anything unparseable falls back to the default preset.
        ``custom_rules`` is a JSON encoded list of ``{sites, ips, outbound}``
        objects; anything unparseable means no custom rules.
        """
        selection: Selection = None
        if selected_rules:
            try:
                decoded = json.loads(selected_rules)
            except ValueError:
                decoded = selected_rules
            if isinstance(decoded, str):
                selection = decoded
            elif isinstance(decoded, list):
                selection = tuple(str(x) for x in decoded)

        rules: List[Dict[str, Any]] = []
        if custom_rules:
            try:
                decoded_rules = json.loads(custom_rules)
            except ValueError:
                decoded_rules = []
            if isinstance(decoded_rules, list):
                rules = [r for r in decoded_rules if isinstance(r, dict)]

        return cls(
            subscription=config,
            selected_rules=selection,
            custom_rules=tuple(rules),
            **options,
        )


@dataclass(frozen=True)
class BuildOutput:
    target: str
    document: Dict[str, Any]
    text: str
    warnings: Tuple[BuildWarning, ...] = ()
