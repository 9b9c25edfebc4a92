from __future__ import annotations
import base64
import sys
import threading

from tqdm import tqdm as _tqdm


def progress(iterable, total=None):
    return _tqdm(iterable, total=total)


_print_lock = threading.Lock()


def log(msg: str) -> None:
    with _print_lock:
        print(msg, file=sys.stderr, flush=True)


def safe_b64decode_to_bytes(s: str) -> bytes | None:
    """Try to base64-decode a string with leniency (padding, URL-safe). Returns None on failure."""
    if not s:
        return None
    # Remove whitespace
    compact = ''.join(s.split())
    # Convert URL-safe variants
    compact = compact.replace('-', '+').replace('_', '/')
    # Pad
    padding = (-len(compact)) % 4
    compact += '=' * padding
    try:
        return base64.b64decode(compact, validate=True)
    except ValueError:
        return None


def safe_b64decode_to_text(s: str) -> str | None:
    b = safe_b64decode_to_bytes(s)
    if b is None:
        return None
    try:
        return b.decode('utf-8')
    except UnicodeDecodeError:
        return None


def encode_base64(text: str) -> str:
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def shorten(s: str, limit: int = 48) -> str:
    s = s.strip()
    return s if len(s) <= limit else s[:limit] + '...'
