from __future__ import annotations

from typing import List

import requests

from .common import log, progress
from .constants import FETCH_MAX_BYTES, FETCH_TIMEOUT, USER_AGENT
from .errors import FetchError
from .parsing import maybe_decode_subscription


def is_remote(source: str) -> bool:
    return source.lower().startswith(('http://', 'https://'))


def fetch_url(url: str, timeout: int = FETCH_TIMEOUT) -> str:
    try:
        with requests.get(url, headers={'User-Agent': USER_AGENT, 'Accept': '*/*'},
                          timeout=timeout, stream=True) as resp:
            resp.raise_for_status()
            # limit size to avoid memory blowups
            chunks: List[bytes] = []
            size = 0
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                chunks.append(chunk)
                size += len(chunk)
                if size >= FETCH_MAX_BYTES:
                    break
            data = b''.join(chunks)[:FETCH_MAX_BYTES]
    except requests.RequestException as e:
        raise FetchError(url, str(e)) from e
    return data.decode('utf-8', errors='ignore')


def expand_remote_lines(text: str, timeout: int = FETCH_TIMEOUT) -> str:
    """Replace http(s) lines inside a subscription with the links they serve.

    A nested subscription that cannot be fetched is logged and left out.
    """
    lines = [ln.strip() for ln in maybe_decode_subscription(text).splitlines()]
    remote = [ln for ln in lines if is_remote(ln)]
    if not remote:
        return text

    fetched = {}
    for url in progress(remote, total=len(remote)):
        try:
            fetched[url] = maybe_decode_subscription(fetch_url(url, timeout=timeout))
        except FetchError as e:
            log(f"Fetch failed: {e}")

    out: List[str] = []
    for ln in lines:
        if is_remote(ln):
            if ln in fetched:
                out.extend(fetched[ln].splitlines())
        else:
            out.append(ln)
    return '\n'.join(out)
