from __future__ import annotations

from typing import Dict, List

from .common import encode_base64
from .constants import GEOIP_DB
from .converter import clash, singbox
from .converter.base import Target
from .errors import ConfigError
from .grouping import synthesize
from .models import BuildOutput, BuildRequest, BuildWarning
from .parsing import parse
from .rules import resolve

TARGETS: Dict[str, Target] = {
    'singbox': singbox.TARGET,
    'clash': clash.TARGET,
}


def build(target: str, request: BuildRequest, geoip_db: str = GEOIP_DB) -> BuildOutput:
    """Run the whole pipeline for one target.

    Raises ConfigError when no document can be produced: unknown target, no
    usable nodes, or a rule whose outbound resolves to nothing. Everything
    recoverable is returned in ``BuildOutput.warnings``.
    """
    emitter = TARGETS.get(target)
    if emitter is None:
        raise ConfigError(f"unknown target {target!r}, expected one of: {', '.join(TARGETS)}")

    warnings: List[BuildWarning] = []
    nodes, parse_warnings = parse(request.subscription)
    warnings.extend(parse_warnings)
    if not nodes:
        raise ConfigError(f"no usable proxy nodes in subscription ({len(parse_warnings)} entries rejected)")

    rules, rule_warnings = resolve(request.selected_rules, request.custom_rules)
    warnings.extend(rule_warnings)

    groups, group_warnings = synthesize(
        nodes, rules,
        group_by_country=request.group_by_country,
        fallback_group=request.fallback_group,
        geoip_db=geoip_db,
    )
    warnings.extend(group_warnings)

    document = emitter.emit(nodes, rules, groups)
    return BuildOutput(
        target=target,
        document=document,
        text=emitter.dump(document),
        warnings=tuple(warnings),
    )


def build_singbox(request: BuildRequest) -> BuildOutput:
    return build('singbox', request)


def build_clash(request: BuildRequest) -> BuildOutput:
    return build('clash', request)


def encode_xray(text: str) -> str:
    """The xray target is the raw subscription, base64 encoded."""
    return encode_base64(text)
