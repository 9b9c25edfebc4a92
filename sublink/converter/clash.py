from __future__ import annotations

import io
from typing import Any, Dict, List, Set

from ruamel.yaml import YAML

from ..constants import BLOCK, CLASH_PORT, DIRECT, TEST_INTERVAL, TEST_TOLERANCE, TEST_URL
from ..models import ProxyGroup, ProxyNode, RoutingRule, Strategy
from ..rule_sets import CLASH_BUILTINS
from .base import Document, Rename, Target

GROUP_TYPES = {
    Strategy.MANUAL: 'select',
    Strategy.LATENCY: 'url-test',
    Strategy.FALLBACK: 'fallback',
}

# Clash.Meta ships obfs and v2ray-plugin under its own names
SS_PLUGINS = {
    'obfs-local': 'obfs',
    'simple-obfs': 'obfs',
    'obfs': 'obfs',
    'v2ray-plugin': 'v2ray-plugin',
}


def _plugin_opts(plugin: str, opts: str) -> Dict[str, Any]:
    raw: Dict[str, str] = {}
    flags: Set[str] = set()
    for part in opts.split(';'):
        part = part.strip()
        if not part:
            continue
        if '=' in part:
            k, v = part.split('=', 1)
            raw[k.strip()] = v.strip()
        else:
            flags.add(part)
    if plugin == 'obfs':
        out: Dict[str, Any] = {'mode': raw.get('obfs', 'http')}
        if raw.get('obfs-host'):
            out['host'] = raw['obfs-host']
        return out
    out = {'mode': raw.get('mode', 'websocket')}
    if 'tls' in flags:
        out['tls'] = True
    if raw.get('host'):
        out['host'] = raw['host']
    if raw.get('path'):
        out['path'] = raw['path']
    return out


def _transport(node: ProxyNode, out: Dict[str, Any]) -> None:
    t = node.transport
    if t.network == 'tcp':
        return
    if t.network == 'ws':
        out['network'] = 'ws'
        ws: Dict[str, Any] = {'path': t.path or '/'}
        if t.host:
            ws['headers'] = {'Host': t.host}
        out['ws-opts'] = ws
    elif t.network == 'httpupgrade':
        out['network'] = 'ws'
        ws = {'path': t.path or '/', 'v2ray-http-upgrade': True}
        if t.host:
            ws['headers'] = {'Host': t.host}
        out['ws-opts'] = ws
    elif t.network == 'grpc':
        out['network'] = 'grpc'
        out['grpc-opts'] = {'grpc-service-name': t.service_name}
    elif t.network == 'h2':
        out['network'] = 'h2'
        h2: Dict[str, Any] = {'path': t.path or '/'}
        if t.host:
            h2['host'] = [h.strip() for h in t.host.split(',') if h.strip()]
        out['h2-opts'] = h2
    elif t.network == 'http':
        out['network'] = 'http'
        http: Dict[str, Any] = {'path': [t.path or '/']}
        if t.host:
            http['headers'] = {'Host': [h.strip() for h in t.host.split(',') if h.strip()]}
        out['http-opts'] = http


def _tls(node: ProxyNode, out: Dict[str, Any], sni_key: str) -> None:
    tls = node.tls
    if not tls.enabled:
        return
    if sni_key == 'servername':
        out['tls'] = True
    if tls.server_name:
        out[sni_key] = tls.server_name
    if tls.alpn:
        out['alpn'] = list(tls.alpn)
    out['skip-cert-verify'] = tls.insecure
    if tls.fingerprint:
        out['client-fingerprint'] = tls.fingerprint
    if tls.reality:
        out['reality-opts'] = {
            'public-key': tls.reality_public_key,
            'short-id': tls.reality_short_id,
        }
        out.setdefault('client-fingerprint', 'chrome')


def proxy_to_clash(node: ProxyNode) -> Dict[str, Any]:
    # Map internal proxy to Clash Meta format
    out: Dict[str, Any] = {
        'name': node.tag,
        'type': {'shadowsocks': 'ss', 'socks': 'socks5'}.get(node.protocol, node.protocol),
        'server': node.server,
        'port': node.port,
    }

    if node.protocol == 'vmess':
        out['uuid'] = node.uuid
        out['alterId'] = node.alter_id
        out['cipher'] = node.cipher
        out['udp'] = True
        _transport(node, out)
        _tls(node, out, 'servername')
    elif node.protocol == 'vless':
        out['uuid'] = node.uuid
        if node.flow:
            out['flow'] = node.flow
        out['udp'] = True
        _transport(node, out)
        _tls(node, out, 'servername')
    elif node.protocol == 'trojan':
        out['password'] = node.password
        out['udp'] = True
        _transport(node, out)
        _tls(node, out, 'sni')
    elif node.protocol == 'shadowsocks':
        out['cipher'] = node.method
        out['password'] = node.password
        out['udp'] = True
        plugin = SS_PLUGINS.get(node.plugin)
        if plugin:
            out['plugin'] = plugin
            out['plugin-opts'] = _plugin_opts(plugin, node.plugin_opts)
    elif node.protocol == 'hysteria2':
        out['password'] = node.password
        if node.up_mbps:
            out['up'] = node.up_mbps
        if node.down_mbps:
            out['down'] = node.down_mbps
        if node.obfs:
            out['obfs'] = node.obfs
            out['obfs-password'] = node.obfs_password
        _tls(node, out, 'sni')
    elif node.protocol == 'tuic':
        out['uuid'] = node.uuid
        out['password'] = node.password
        if node.congestion_control:
            out['congestion-controller'] = node.congestion_control
        if node.udp_relay_mode:
            out['udp-relay-mode'] = node.udp_relay_mode
        _tls(node, out, 'sni')
    elif node.protocol == 'socks':
        if node.username:
            out['username'] = node.username
        if node.password:
            out['password'] = node.password
        out['udp'] = True
    return out


def group_to_clash(group: ProxyGroup, rename: Rename) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        'name': group.name,
        'type': GROUP_TYPES[group.strategy],
        'proxies': [rename(m) for m in group.members],
    }
    if group.strategy is not Strategy.MANUAL:
        out['url'] = TEST_URL
        out['interval'] = TEST_INTERVAL
    if group.strategy is Strategy.LATENCY:
        out['tolerance'] = TEST_TOLERANCE
    return out


def rule_to_clash(rule: RoutingRule, policy: str) -> List[str]:
    lines = [f'DOMAIN-SUFFIX,{d},{policy}' for d in rule.domains]
    for cidr in rule.ip_cidrs:
        kind = 'IP-CIDR6' if ':' in cidr else 'IP-CIDR'
        lines.append(f'{kind},{cidr},{policy},no-resolve')
    return lines


def assemble(proxies: List[Dict[str, Any]], groups: List[Dict[str, Any]], rules: List[Any], final: str) -> Document:
    return {
        'mixed-port': CLASH_PORT,
        'allow-lan': False,
        'mode': 'rule',
        'log-level': 'info',
        'external-controller': '127.0.0.1:9090',
        'dns': {
            'enable': True,
            'ipv6': False,
            'enhanced-mode': 'fake-ip',
            'fake-ip-range': '198.18.0.1/16',
            'default-nameserver': ['223.5.5.5', '119.29.29.29'],
            'nameserver': ['https://dns.alidns.com/dns-query', 'https://doh.pub/dns-query'],
            'fallback': ['https://1.1.1.1/dns-query', 'tls://8.8.4.4'],
        },
        'proxies': proxies,
        'proxy-groups': groups,
        'rules': rules + [f'MATCH,{final}'],
    }


def rule_policy(line: str) -> str:
    parts = [p.strip() for p in line.split(',')]
    if parts[0] == 'MATCH':
        return parts[1]
    if parts[-1] == 'no-resolve':
        return parts[-2]
    return parts[-1]


def references(document: Document) -> Set[str]:
    names = {rule_policy(line) for line in document.get('rules', [])}
    for g in document.get('proxy-groups', []):
        names.update(g.get('proxies', []))
    return names


def declarations(document: Document) -> Set[str]:
    names = set(CLASH_BUILTINS)
    names.update(p['name'] for p in document.get('proxies', []))
    names.update(g['name'] for g in document.get('proxy-groups', []))
    return names


def dump(document: Document) -> str:
    yaml_ = YAML()
    yaml_.default_flow_style = False
    yaml_.allow_unicode = True
    yaml_.width = 4096
    buf = io.StringIO()
    yaml_.dump(document, buf)
    return buf.getvalue()


TARGET = Target(
    name='clash',
    sentinels={DIRECT: 'DIRECT', BLOCK: 'REJECT'},
    proxy=proxy_to_clash,
    group=group_to_clash,
    rule=rule_to_clash,
    assemble=assemble,
    references=references,
    declarations=declarations,
    dump=dump,
)
