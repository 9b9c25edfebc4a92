from __future__ import annotations

import ipaddress
import re
from typing import Iterable, List, Mapping, Optional, Set, Tuple

from .common import shorten
from .constants import DEFAULT_PRESET, SENTINEL_ALIASES
from .models import BuildWarning, CustomRule, RoutingRule, RuleCategory, RuleKind, Selection
from .rule_sets import PRESETS, lookup, normalize_name, table_index

DOMAIN_REGEX = re.compile(r'^[a-z0-9_](?:[a-z0-9_-]*[a-z0-9_])?(?:\.[a-z0-9_](?:[a-z0-9_-]*[a-z0-9_])?)*$')


def _as_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    out: List[str] = []
    for item in value:
        out.extend(p.strip() for p in str(item).split(',') if p.strip())
    return out


def normalize_domain(value: str) -> Optional[str]:
    d = value.strip().lower()
    while d.startswith('*.') or d.startswith('.'):
        d = d[2:] if d.startswith('*.') else d[1:]
    d = d.rstrip('.')
    try:
        d = d.encode('idna').decode('ascii')
    except UnicodeError:
        return None
    return d if d and DOMAIN_REGEX.match(d) else None


def normalize_cidr(value: str) -> Optional[str]:
    try:
        return str(ipaddress.ip_network(value.strip(), strict=False))
    except ValueError:
        return None


def normalize_target(value: str) -> str:
    target = value.strip()
    return SENTINEL_ALIASES.get(target.lower(), target)


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    seen: Set[str] = set()
    out = []
    for x in items:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return tuple(out)


def custom_rule(raw: CustomRule, warnings: List[BuildWarning]) -> Optional[RoutingRule]:
    """Validate one ``{sites, ips, outbound}`` mapping into a routing rule, or None."""
    if not isinstance(raw, Mapping):
        warnings.append(BuildWarning('rules', shorten(repr(raw)), 'custom rule is not an object'))
        return None

    target = normalize_target(str(raw.get('outbound') or raw.get('name') or ''))
    label = target or '<no outbound>'
    if not target:
        warnings.append(BuildWarning('rules', label, 'custom rule without outbound dropped'))
        return None

    domains = []
    for site in _as_list(raw.get('sites')):
        d = normalize_domain(site)
        if d is None:
            warnings.append(BuildWarning('rules', shorten(site), f'invalid domain in rule for {label}'))
        else:
            domains.append(d)
    cidrs = []
    for ip in _as_list(raw.get('ips')):
        c = normalize_cidr(ip)
        if c is None:
            warnings.append(BuildWarning('rules', shorten(ip), f'invalid IP/CIDR in rule for {label}'))
        else:
            cidrs.append(c)

    if not domains and not cidrs:
        warnings.append(BuildWarning('rules', label, 'custom rule without domains or IPs dropped'))
        return None
    return RoutingRule(
        kind=RuleKind.CUSTOM_DOMAIN if domains else RuleKind.CUSTOM_IP,
        target=target,
        domains=_unique(domains),
        ip_cidrs=_unique(cidrs),
    )


def select_categories(selected: Selection, warnings: List[BuildWarning]) -> List[RuleCategory]:
    """Expand a selection of category ids and preset aliases into table-ordered categories.

    ``None`` means the default preset and an empty list means no categories.
    A non-empty selection in which nothing is recognised also falls back to
    the default preset.
    """
    if selected is None:
        names = [DEFAULT_PRESET]
    else:
        names = _as_list(selected)

    chosen = {}
    for name in names:
        preset = PRESETS.get(normalize_name(name))
        if preset is not None:
            for cid in preset:
                chosen[cid] = lookup(cid)
            continue
        category = lookup(name)
        if category is None:
            warnings.append(BuildWarning('rules', shorten(name), 'unknown rule category ignored'))
            continue
        chosen[category.id] = category

    if names and not chosen:
        warnings.append(BuildWarning('rules', '', f'no usable rule category selected, using {DEFAULT_PRESET!r}'))
        chosen = {cid: lookup(cid) for cid in PRESETS[DEFAULT_PRESET]}

    return sorted(chosen.values(), key=lambda c: table_index(c.id))


def resolve(selected: Selection, custom_rules: Iterable[CustomRule] = ()) -> Tuple[List[RoutingRule], List[BuildWarning]]:
    """Build the ordered routing rule list.

    Custom rules come first in input order, then one rule per selected
    category in table order. Under first-match routing this makes custom
    rules take precedence over every category.
    """
    warnings: List[BuildWarning] = []
    rules: List[RoutingRule] = []
    seen = set()
    for raw in custom_rules or ():
        rule = custom_rule(raw, warnings)
        if rule is None:
            continue
        key = (rule.domains, rule.ip_cidrs, rule.target)
        if key in seen:
            warnings.append(BuildWarning('rules', rule.target, 'duplicate custom rule dropped'))
            continue
        seen.add(key)
        rules.append(rule)

    for category in select_categories(selected, warnings):
        rules.append(RoutingRule(
            kind=RuleKind.CATEGORY,
            target=category.outbound,
            domains=category.domains,
            ip_cidrs=category.ip_cidrs,
            source=category.id,
        ))
    return rules, warnings
