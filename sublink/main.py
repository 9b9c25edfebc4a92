from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from .builder import TARGETS, build, encode_xray
from .common import log
from .constants import DEBUG
from .errors import ConfigError, FetchError
from .io_ops import read_text, write_text_file_atomic
from .models import BuildRequest
from .net import expand_remote_lines, fetch_url, is_remote


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='sublink',
        description='Convert a proxy subscription into a sing-box or Clash configuration.',
    )
    p.add_argument('source', help='subscription file, "-" for stdin, or an http(s) URL')
    p.add_argument('-t', '--target', choices=sorted(TARGETS) + ['xray'], default='singbox')
    p.add_argument('-r', '--rules', default=None,
                   help='preset (minimal, balanced, comprehensive), comma separated category ids or a JSON list')
    p.add_argument('-c', '--custom-rules', default=None,
                   help='JSON list of {"sites": [...], "ips": [...], "outbound": "..."}; prefix with @ to read a file')
    p.add_argument('--group-by-country', action='store_true', help='add one selector per detected region')
    p.add_argument('--fallback', action='store_true', help='add a fallback group over all nodes')
    p.add_argument('-o', '--output', default='-', help='output file (default: stdout)')
    p.add_argument('-q', '--quiet', action='store_true', help='do not print warnings')
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)

    try:
        if is_remote(args.source):
            log(f"[+] Download: {args.source}")
            text = fetch_url(args.source)
        else:
            text = read_text(args.source)
        custom = args.custom_rules
        if custom and custom.startswith('@'):
            custom = read_text(custom[1:])
    except (FetchError, OSError) as e:
        log(f"[FATAL] Cannot read input: {e}")
        return 1

    if args.target == 'xray':
        output = encode_xray(text)
    else:
        text = expand_remote_lines(text)
        request = BuildRequest.from_params(
            text, args.rules, custom,
            group_by_country=args.group_by_country,
            fallback_group=args.fallback,
        )
        try:
            result = build(args.target, request)
        except ConfigError as e:
            log(f"[FATAL] {e}")
            return 2
        if not args.quiet:
            for w in result.warnings:
                log(f"[!] WARNING: {w}")
        if DEBUG:
            log(f"[~] {args.target}: {len(result.text)} bytes, {len(result.warnings)} warnings")
        output = result.text

    if args.output == '-':
        sys.stdout.write(output)
        if not output.endswith('\n'):
            sys.stdout.write('\n')
    else:
        write_text_file_atomic(args.output, output)
        log(f"[✓] Output {args.target} config: {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
