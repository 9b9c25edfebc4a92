from __future__ import annotations

import ipaddress
import re
from typing import Optional

import geoip2.database
import geoip2.errors

# Keywords seen in node names, matched case-insensitively. Two-letter codes are
# matched separately, upper-case only, so words like "in" or "us" do not count.
_KEYWORDS = (
    ('HK', ('hong kong', 'hongkong', '香港')),
    ('TW', ('taiwan', '台湾', '臺灣')),
    ('JP', ('japan', 'tokyo', 'osaka', '日本')),
    ('SG', ('singapore', '新加坡')),
    ('KR', ('korea', 'seoul', '韩国', '韓國')),
    ('US', ('united states', 'los angeles', 'san jose', 'seattle', 'new york', 'america', '美国')),
    ('GB', ('united kingdom', 'london', 'britain', '英国')),
    ('DE', ('germany', 'frankfurt', '德国')),
    ('NL', ('netherlands', 'amsterdam', '荷兰')),
    ('FR', ('france', 'paris', '法国')),
    ('RU', ('russia', 'moscow', '俄罗斯')),
    ('CA', ('canada', 'toronto', '加拿大')),
    ('AU', ('australia', 'sydney', '澳大利亚')),
    ('IN', ('india', 'mumbai', '印度')),
    ('TR', ('turkey', 'istanbul', '土耳其')),
    ('IR', ('iran', 'tehran', '伊朗')),
)
_CODES = {code for code, _ in _KEYWORDS} | {'UK'}
_CODE_REGEX = re.compile(r'(?<![A-Za-z])([A-Z]{2})(?![A-Za-z])')
_FLAG_REGEX = re.compile('([\U0001F1E6-\U0001F1FF]{2})')


def _country_flag(cc: Optional[str]) -> str:
    if not cc or len(cc) != 2 or not cc.isalpha():
        return "🌐"
    cc = cc.upper()
    return chr(0x1F1E6 + ord(cc[0]) - 65) + chr(0x1F1E6 + ord(cc[1]) - 65)


def _flag_to_code(flag: str) -> str:
    return ''.join(chr(ord(ch) - 0x1F1E6 + 65) for ch in flag)


def country_from_name(name: str) -> Optional[str]:
    m = _FLAG_REGEX.search(name)
    if m:
        return _flag_to_code(m.group(1))
    lowered = name.lower()
    for code, words in _KEYWORDS:
        if any(w in lowered for w in words):
            return code
    for m in _CODE_REGEX.finditer(name):
        cc = m.group(1)
        if cc in _CODES:
            return 'GB' if cc == 'UK' else cc
    return None


def get_country_code_geoip2(ip: str, reader: geoip2.database.Reader) -> Optional[str]:
    """
    Returns 2-letter country code for a static IP using an open GeoLite2-Country reader.
    Hostnames and addresses missing from the database give None.
    """
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return None
    try:
        cc = reader.country(ip).country.iso_code
    except (geoip2.errors.AddressNotFoundError, ValueError):
        return None
    if isinstance(cc, str) and len(cc) == 2:
        return cc.upper()
    return None


def detect_country(name: str, server: str, reader: Optional[geoip2.database.Reader] = None) -> Optional[str]:
    cc = country_from_name(name)
    if cc is None and reader is not None:
        cc = get_country_code_geoip2(server, reader)
    return cc


def country_group_name(cc: str) -> str:
    return f"{_country_flag(cc)} {cc}"
