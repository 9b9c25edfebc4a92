import os
from typing import Optional


def _env_int(name: str, default: int, min_v: Optional[int] = None, max_v: Optional[int] = None) -> int:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        n = int(val)
    except ValueError:
        return default
    if min_v is not None and n < min_v:
        n = min_v
    if max_v is not None and n > max_v:
        n = max_v
    return n


def _env_str(name: str, default: str) -> str:
    val = os.environ.get(name, '').strip()
    return val or default


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').strip().lower() in ('1', 'true', 'yes', 'on')


# Reserved outbound names. Sentinels are not backed by a proxy node.
DIRECT = 'direct'
BLOCK = 'block'
SENTINELS = (DIRECT, BLOCK)
SENTINEL_ALIASES = {
    'direct': DIRECT,
    'block': BLOCK,
    'reject': BLOCK,
}

# Built-in group names
SELECT_GROUP = 'select'
AUTO_GROUP = 'auto'
FALLBACK_GROUP = 'fallback'
BUILTIN_GROUPS = (SELECT_GROUP, AUTO_GROUP, FALLBACK_GROUP)

DEFAULT_PRESET = 'minimal'

# Latency test parameters written into url-test / urltest groups
TEST_URL = _env_str('SUBLINK_TEST_URL', 'https://www.gstatic.com/generate_204')
TEST_INTERVAL = _env_int('SUBLINK_TEST_INTERVAL', 300, 30, 86400)
TEST_TOLERANCE = _env_int('SUBLINK_TEST_TOLERANCE', 50, 0, 5000)

# Local listeners in generated client documents
MIXED_PORT = _env_int('SUBLINK_MIXED_PORT', 2080, 1, 65535)
CLASH_PORT = _env_int('SUBLINK_CLASH_PORT', 7890, 1, 65535)

# Remote subscription fetching (CLI only)
FETCH_TIMEOUT = _env_int('SUBLINK_FETCH_TIMEOUT', 15, 1, 120)
FETCH_MAX_BYTES = _env_int('SUBLINK_FETCH_MAX_BYTES', 10 * 1024 * 1024, 1024, 100 * 1024 * 1024)
USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) '
    'AppleWebKit/537.36 (KHTML, like Gecko) '
    'Chrome/122.0 Safari/537.36'
)

# Optional GeoLite2-Country database used to place IP-addressed servers into country groups
GEOIP_DB = os.environ.get('SUBLINK_GEOIP_DB', '').strip()

DEBUG = _env_flag('SUBLINK_DEBUG')
