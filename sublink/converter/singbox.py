from __future__ import annotations

import json
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Set

from ..constants import BLOCK, DIRECT, MIXED_PORT, TEST_INTERVAL, TEST_TOLERANCE, TEST_URL
from ..models import ProxyGroup, ProxyNode, RoutingRule, Strategy, TLSOptions, Transport
from .base import Document, Rename, Target

GROUP_TYPES = {
    Strategy.MANUAL: 'selector',
    Strategy.LATENCY: 'urltest',
    # sing-box has no fallback outbound; urltest is the closest equivalent
    Strategy.FALLBACK: 'urltest',
}


def _tls(node: ProxyNode) -> Optional[Dict[str, Any]]:
    tls: TLSOptions = node.tls
    if not tls.enabled:
        return None
    out: Dict[str, Any] = {'enabled': True}
    if tls.server_name:
        out['server_name'] = tls.server_name
    if tls.insecure:
        out['insecure'] = True
    if tls.alpn:
        out['alpn'] = list(tls.alpn)
    fingerprint = tls.fingerprint or ('chrome' if tls.reality else '')
    if fingerprint:
        out['utls'] = {'enabled': True, 'fingerprint': fingerprint}
    if tls.reality:
        out['reality'] = {
            'enabled': True,
            'public_key': tls.reality_public_key,
            'short_id': tls.reality_short_id,
        }
    return out


def _transport(t: Transport) -> Optional[Dict[str, Any]]:
    if t.network == 'ws':
        out: Dict[str, Any] = {'type': 'ws', 'path': t.path or '/'}
        if t.host:
            out['headers'] = {'Host': t.host}
        return out
    if t.network == 'grpc':
        return {'type': 'grpc', 'service_name': t.service_name}
    if t.network in ('http', 'h2'):
        out = {'type': 'http'}
        if t.host:
            out['host'] = [h.strip() for h in t.host.split(',') if h.strip()]
        if t.path:
            out['path'] = t.path
        return out
    if t.network == 'httpupgrade':
        out = {'type': 'httpupgrade', 'path': t.path or '/'}
        if t.host:
            out['host'] = t.host
        return out
    return None


def proxy_to_singbox(node: ProxyNode) -> Dict[str, Any]:
    out: Dict[str, Any] = OrderedDict([
        ('type', 'shadowsocks' if node.protocol == 'shadowsocks' else node.protocol),
        ('tag', node.tag),
        ('server', node.server),
        ('server_port', node.port),
    ])

    if node.protocol == 'vmess':
        out['uuid'] = node.uuid
        out['security'] = node.cipher
        out['alter_id'] = node.alter_id
    elif node.protocol == 'vless':
        out['uuid'] = node.uuid
        if node.flow:
            out['flow'] = node.flow
    elif node.protocol == 'trojan':
        out['password'] = node.password
    elif node.protocol == 'shadowsocks':
        out['method'] = node.method
        out['password'] = node.password
        if node.plugin:
            out['plugin'] = node.plugin
            if node.plugin_opts:
                out['plugin_opts'] = node.plugin_opts
    elif node.protocol == 'hysteria2':
        out['password'] = node.password
        if node.up_mbps:
            out['up_mbps'] = node.up_mbps
        if node.down_mbps:
            out['down_mbps'] = node.down_mbps
        if node.obfs:
            out['obfs'] = {'type': node.obfs, 'password': node.obfs_password}
    elif node.protocol == 'tuic':
        out['uuid'] = node.uuid
        out['password'] = node.password
        if node.congestion_control:
            out['congestion_control'] = node.congestion_control
        if node.udp_relay_mode:
            out['udp_relay_mode'] = node.udp_relay_mode
    elif node.protocol == 'socks':
        out['version'] = '5'
        if node.username:
            out['username'] = node.username
        if node.password:
            out['password'] = node.password

    if node.protocol in ('vmess', 'vless', 'trojan'):
        transport = _transport(node.transport)
        if transport:
            out['transport'] = transport
    tls = _tls(node)
    if tls:
        out['tls'] = tls
    return out


def group_to_singbox(group: ProxyGroup, rename: Rename) -> Dict[str, Any]:
    out: Dict[str, Any] = OrderedDict([
        ('type', GROUP_TYPES[group.strategy]),
        ('tag', group.name),
        ('outbounds', [rename(m) for m in group.members]),
    ])
    if group.strategy is Strategy.MANUAL:
        out['default'] = rename(group.members[0])
    else:
        out['url'] = TEST_URL
        out['interval'] = f'{TEST_INTERVAL}s'
        out['tolerance'] = TEST_TOLERANCE
    return out


def rule_to_singbox(rule: RoutingRule, outbound: str) -> List[Dict[str, Any]]:
    out: Dict[str, Any] = OrderedDict()
    if rule.domains:
        out['domain_suffix'] = list(rule.domains)
    if rule.ip_cidrs:
        out['ip_cidr'] = list(rule.ip_cidrs)
    out['outbound'] = outbound
    return [out]


def assemble(proxies: List[Dict[str, Any]], groups: List[Dict[str, Any]], rules: List[Any], final: str) -> Document:
    return OrderedDict([
        ('log', {'level': 'info', 'timestamp': True}),
        ('dns', OrderedDict([
            ('servers', [
                {'tag': 'dns-remote', 'address': 'tls://8.8.8.8', 'detour': final},
                {'tag': 'dns-direct', 'address': '223.5.5.5'},
            ]),
            ('rules', [{'outbound': 'any', 'server': 'dns-direct'}]),
            ('final', 'dns-remote'),
            ('strategy', 'prefer_ipv4'),
        ])),
        ('inbounds', [
            OrderedDict([
                ('type', 'mixed'), ('tag', 'mixed-in'), ('listen', '127.0.0.1'),
                ('listen_port', MIXED_PORT), ('sniff', True),
            ]),
            OrderedDict([
                ('type', 'tun'), ('tag', 'tun-in'), ('address', ['172.19.0.1/30']),
                ('auto_route', True), ('strict_route', True), ('stack', 'mixed'), ('sniff', True),
            ]),
        ]),
        ('outbounds', groups + proxies + [
            {'type': 'direct', 'tag': DIRECT},
            {'type': 'block', 'tag': BLOCK},
        ]),
        ('route', OrderedDict([
            ('rules', rules),
            ('final', final),
            ('auto_detect_interface', True),
        ])),
        ('experimental', {'cache_file': {'enabled': True}}),
    ])


def references(document: Document) -> Set[str]:
    names: Set[str] = set()
    route = document.get('route', {})
    names.update(r['outbound'] for r in route.get('rules', []) if 'outbound' in r)
    if route.get('final'):
        names.add(route['final'])
    for o in document.get('outbounds', []):
        names.update(o.get('outbounds', []))
        if o.get('default'):
            names.add(o['default'])
    for s in document.get('dns', {}).get('servers', []):
        if s.get('detour'):
            names.add(s['detour'])
    return names


def declarations(document: Document) -> Set[str]:
    return {o['tag'] for o in document.get('outbounds', [])}


def dump(document: Document) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False) + '\n'


TARGET = Target(
    name='singbox',
    sentinels={DIRECT: DIRECT, BLOCK: BLOCK},
    proxy=proxy_to_singbox,
    group=group_to_singbox,
    rule=rule_to_singbox,
    assemble=assemble,
    references=references,
    declarations=declarations,
    dump=dump,
)
