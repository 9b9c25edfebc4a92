"""
Tests for subscription decoding: one link per supported scheme, payload
detection, warnings for bad entries and deterministic tag deduplication.
"""
import base64
import json

from sublink.parsing import decode_link, maybe_decode_subscription, parse

UUID = '12345678-abcd-1234-abcd-123456789abc'


def vmess_link(**overrides):
    data = {
        'v': '2', 'ps': 'vm-1', 'add': 'vm.example.com', 'port': '443', 'id': UUID, 'aid': '0',
        'scy': 'auto', 'net': 'ws', 'type': 'none', 'host': 'cdn.example.com', 'path': '/ray',
        'tls': 'tls', 'sni': 'vm.example.com',
    }
    data.update(overrides)
    return 'vmess://' + base64.b64encode(json.dumps(data).encode('utf-8')).decode('ascii')


def only_node(text):
    nodes, warnings = parse(text)
    assert warnings == []
    assert len(nodes) == 1
    return nodes[0]


def test_vmess_link():
    node = only_node(vmess_link())
    assert node.protocol == 'vmess'
    assert (node.server, node.port, node.uuid, node.tag) == ('vm.example.com', 443, UUID, 'vm-1')
    assert node.alter_id == 0
    assert node.cipher == 'auto'
    assert node.transport.network == 'ws'
    assert node.transport.path == '/ray'
    assert node.transport.host == 'cdn.example.com'
    assert node.tls.enabled
    assert node.tls.server_name == 'vm.example.com'


def test_vmess_grpc_path_is_service_name_and_unknown_cipher_becomes_auto():
    node = only_node(vmess_link(net='grpc', path='svc', scy='rc4', tls=''))
    assert node.transport.network == 'grpc'
    assert node.transport.service_name == 'svc'
    assert node.transport.path == ''
    assert node.cipher == 'auto'
    assert not node.tls.enabled


def test_vless_reality_link():
    node = only_node(
        f'vless://{UUID}@example.com:443?encryption=none&security=reality&sni=www.microsoft.com'
        '&fp=chrome&pbk=PUBKEY&sid=ab12&type=tcp&flow=xtls-rprx-vision#reality-node'
    )
    assert node.protocol == 'vless'
    assert (node.server, node.port, node.uuid, node.tag) == ('example.com', 443, UUID, 'reality-node')
    assert node.flow == 'xtls-rprx-vision'
    assert node.transport.network == 'tcp'
    assert node.tls.enabled
    assert node.tls.reality
    assert node.tls.server_name == 'www.microsoft.com'
    assert node.tls.fingerprint == 'chrome'
    assert (node.tls.reality_public_key, node.tls.reality_short_id) == ('PUBKEY', 'ab12')


def test_vless_ipv6_host():
    node = only_node(f'vless://{UUID}@[2001:db8::1]:8443?security=none#v6')
    assert node.server == '2001:db8::1'
    assert node.port == 8443
    assert not node.tls.enabled


def test_trojan_ws_link():
    node = only_node('trojan://s3cret@tj.example.com:443?sni=tj.example.com&type=ws&path=%2Fws&host=cdn.example.com#trojan-1')
    assert node.protocol == 'trojan'
    assert (node.server, node.port, node.password, node.tag) == ('tj.example.com', 443, 's3cret', 'trojan-1')
    assert node.transport.network == 'ws'
    assert node.transport.path == '/ws'
    assert node.transport.host == 'cdn.example.com'
    # trojan is TLS unless told otherwise
    assert node.tls.enabled
    assert node.tls.server_name == 'tj.example.com'


def test_shadowsocks_sip002_with_plugin():
    userinfo = base64.urlsafe_b64encode(b'aes-256-gcm:pa55').decode('ascii').rstrip('=')
    node = only_node(
        f'ss://{userinfo}@ss.example.com:8388/?plugin=obfs-local%3Bobfs%3Dhttp%3Bobfs-host%3Dexample.com#ss-1'
    )
    assert node.protocol == 'shadowsocks'
    assert (node.server, node.port, node.method, node.password, node.tag) == (
        'ss.example.com', 8388, 'aes-256-gcm', 'pa55', 'ss-1')
    assert node.plugin == 'obfs-local'
    assert node.plugin_opts == 'obfs=http;obfs-host=example.com'


def test_shadowsocks_plain_and_legacy_forms():
    legacy = base64.b64encode(b'chacha20-ietf-poly1305:pw@1.2.3.4:8388').decode('ascii')
    nodes, warnings = parse('ss://aes-128-gcm:pw@5.6.7.8:443#plain\n' f'ss://{legacy}#legacy')
    assert warnings == []
    assert [(n.method, n.password, n.server, n.port, n.tag) for n in nodes] == [
        ('aes-128-gcm', 'pw', '5.6.7.8', 443, 'plain'),
        ('chacha20-ietf-poly1305', 'pw', '1.2.3.4', 8388, 'legacy'),
    ]


def test_hysteria2_and_hy2_alias():
    link = 'hysteria2://auth@hy.example.com:8443?sni=hy.example.com&insecure=1&obfs=salamander&obfs-password=ob&up=50&down=200#hy'
    node = only_node(link)
    assert node.protocol == 'hysteria2'
    assert (node.server, node.port, node.password, node.tag) == ('hy.example.com', 8443, 'auth', 'hy')
    assert node.tls.enabled and node.tls.insecure
    assert node.tls.server_name == 'hy.example.com'
    assert (node.obfs, node.obfs_password) == ('salamander', 'ob')
    assert (node.up_mbps, node.down_mbps) == (50, 200)

    alias = only_node('hy2://auth@hy.example.com:8443#hy')
    assert alias.protocol == 'hysteria2'
    assert alias.password == 'auth'


def test_tuic_link():
    node = only_node(
        'tuic://uuid-1:pw@tuic.example.com:443?sni=tuic.example.com&congestion_control=bbr&udp_relay_mode=native&alpn=h3#tuic'
    )
    assert node.protocol == 'tuic'
    assert (node.uuid, node.password, node.server, node.port) == ('uuid-1', 'pw', 'tuic.example.com', 443)
    assert node.congestion_control == 'bbr'
    assert node.udp_relay_mode == 'native'
    assert node.tls.alpn == ('h3',)


def test_socks_link_with_base64_userinfo():
    node = only_node('socks://dXNlcjpwYXNz@1.2.3.4:1080#s5')
    assert node.protocol == 'socks'
    assert (node.username, node.password, node.server, node.port, node.tag) == ('user', 'pass', '1.2.3.4', 1080, 's5')


def test_unknown_scheme_is_skipped_without_aborting():
    text = '\n'.join([
        'ssr://c29tZXRoaW5n',
        'trojan://pw@a.example.com:443#a',
        'just some text',
        'trojan://pw@b.example.com:443#b',
    ])
    nodes, warnings = parse(text)
    assert [n.tag for n in nodes] == ['a', 'b']
    assert len(warnings) == 2
    assert all(w.stage == 'parse' for w in warnings)
    assert 'ssr' in warnings[0].message


def test_malformed_entries_are_dropped_with_warnings():
    text = '\n'.join([
        f'vless://{UUID}@example.com?type=tcp#no-port',
        'vmess://%%%not-base64%%%',
        'trojan://@example.com:443#no-password',
        f'vless://{UUID}@example.com:70000#bad-port',
        f'vless://{UUID}@example.com:443?security=reality#no-key',
        f'vless://{UUID}@example.com:443?type=kcp#kcp',
        'trojan://pw@ok.example.com:443#ok',
    ])
    nodes, warnings = parse(text)
    assert [n.tag for n in nodes] == ['ok']
    assert len(warnings) == 6


def test_decode_link_reports_failure_reason():
    result = decode_link('trojan://pw@example.com#x')
    assert not result.ok
    assert 'missing port' in result.error


def test_duplicate_names_get_deterministic_suffixes():
    text = '\n'.join([
        'trojan://pw@a.example.com:443#dup',
        'trojan://pw@b.example.com:443#dup',
        'trojan://pw@c.example.com:443#DUP',
        'trojan://pw@d.example.com:443#other',
    ])
    nodes, _ = parse(text)
    assert [n.tag for n in nodes] == ['dup', 'dup #2', 'DUP #3', 'other']
    assert [n.server for n in nodes] == ['a.example.com', 'b.example.com', 'c.example.com', 'd.example.com']
    assert [n.tag for n in parse(text)[0]] == [n.tag for n in nodes]


def test_reserved_names_and_missing_names():
    nodes, _ = parse('\n'.join([
        'trojan://pw@a.example.com:443#select',
        'trojan://pw@b.example.com:443#Google',
        'trojan://pw@c.example.com:443',
        'trojan://pw@d.example.com:443#a%2Cb',
    ]))
    assert [n.tag for n in nodes] == ['select #2', 'Google #2', 'trojan_c.example.com', 'a b']


def test_whole_blob_base64_subscription():
    links = [vmess_link(), 'trojan://pw@tj.example.com:443#tj']
    blob = base64.b64encode('\n'.join(links).encode('utf-8')).decode('ascii')
    assert maybe_decode_subscription(blob) == '\n'.join(links)
    nodes, warnings = parse(blob)
    assert warnings == []
    assert [n.protocol for n in nodes] == ['vmess', 'trojan']


def test_plain_text_is_not_decoded():
    text = 'trojan://pw@tj.example.com:443#tj'
    assert maybe_decode_subscription(text) == text


def test_clash_yaml_subscription():
    text = '\n'.join([
        'proxies:',
        '  - name: hk-ss',
        '    type: ss',
        '    server: 5.6.7.8',
        '    port: 8388',
        '    cipher: aes-128-gcm',
        '    password: pw',
        '  - name: bad',
        '    type: snell',
        '    server: x.example.com',
        '    port: 1',
        '  - name: vl',
        '    type: vless',
        '    server: vl.example.com',
        '    port: 443',
        f'    uuid: {UUID}',
        '    tls: true',
        '    servername: vl.example.com',
        '    network: ws',
        '    ws-opts:',
        '      path: /vl',
        '      headers:',
        '        Host: cdn.example.com',
    ])
    nodes, warnings = parse(text)
    assert [n.tag for n in nodes] == ['hk-ss', 'vl']
    assert len(warnings) == 1
    ss, vl = nodes
    assert (ss.protocol, ss.method, ss.password, ss.port) == ('shadowsocks', 'aes-128-gcm', 'pw', 8388)
    assert vl.protocol == 'vless'
    assert vl.transport.network == 'ws'
    assert (vl.transport.path, vl.transport.host) == ('/vl', 'cdn.example.com')
    assert vl.tls.enabled and vl.tls.server_name == 'vl.example.com'


def test_comments_and_blank_lines_are_ignored():
    nodes, warnings = parse('\n# comment\n\n  trojan://pw@tj.example.com:443#tj  \n')
    assert warnings == []
    assert [n.tag for n in nodes] == ['tj']


def test_links_are_found_anywhere_in_a_line():
    nodes, warnings = parse('\n'.join([
        'trojan://pw@a.example.com:443#a trojan://pw@b.example.com:443#b',
        'Free node: trojan://pw@c.example.com:443#c',
        '(trojan://pw@d.example.com:443#d), <trojan://pw@e.example.com:443#e>',
        'no links on this line',
    ]))
    assert [(n.server, n.tag) for n in nodes] == [
        ('a.example.com', 'a'),
        ('b.example.com', 'b'),
        ('c.example.com', 'c'),
        ('d.example.com', 'd'),
        ('e.example.com', 'e'),
    ]
    assert len(warnings) == 1
    assert warnings[0].item == 'no links on this line'


def test_vmess_tcp_with_http_header_becomes_http_transport():
    node = only_node(vmess_link(net='tcp', type='http', host='a.example.com', path='/x'))
    assert node.transport.network == 'http'
    assert (node.transport.host, node.transport.path) == ('a.example.com', '/x')

    plain = only_node(vmess_link(net='tcp', type='none', host='', path=''))
    assert plain.transport.network == 'tcp'


def test_vless_tcp_with_http_header_becomes_http_transport():
    node = only_node(f'vless://{UUID}@example.com:443?type=tcp&headerType=http&host=a.example.com&path=%2Fx#h')
    assert node.transport.network == 'http'
    assert (node.transport.host, node.transport.path) == ('a.example.com', '/x')


def test_clash_scalar_lists_and_http_opts():
    text = '\n'.join([
        'proxies:',
        '  - name: h2-node',
        '    type: vless',
        '    server: h2.example.com',
        '    port: 443',
        f'    uuid: {UUID}',
        '    tls: true',
        '    alpn: h2',
        '    network: h2',
        '    h2-opts:',
        '      host: cdn.example.com',
        '      path: /h2',
        '  - name: http-node',
        '    type: vmess',
        '    server: http.example.com',
        '    port: 80',
        f'    uuid: {UUID}',
        '    cipher: auto',
        '    network: http',
        '    http-opts:',
        '      path: [/p]',
        '      headers:',
        '        Host: [a.example.com, b.example.com]',
    ])
    nodes, warnings = parse(text)
    assert warnings == []
    h2, http = nodes
    assert h2.tls.alpn == ('h2',)
    assert (h2.transport.network, h2.transport.host, h2.transport.path) == ('h2', 'cdn.example.com', '/h2')
    assert (http.transport.network, http.transport.path) == ('http', '/p')
    assert http.transport.host == 'a.example.com,b.example.com'
