from __future__ import annotations

import os
from typing import Dict, List, Optional, Sequence, Set, Tuple

import geoip2.database

from .constants import AUTO_GROUP, BLOCK, DIRECT, FALLBACK_GROUP, GEOIP_DB, SELECT_GROUP, SENTINELS
from .errors import ConfigError
from .geo import country_group_name, detect_country
from .models import BuildWarning, ProxyGroup, ProxyNode, RoutingRule, RuleCategory, Strategy
from .rule_sets import DIRECT as POLICY_DIRECT, REJECT as POLICY_REJECT, lookup


def _category_members(category: RuleCategory, tags: Sequence[str]) -> Tuple[str, ...]:
    if category.policy == POLICY_REJECT:
        return (BLOCK, DIRECT, SELECT_GROUP)
    if category.policy == POLICY_DIRECT:
        return (DIRECT, SELECT_GROUP, BLOCK)
    return (SELECT_GROUP, AUTO_GROUP, DIRECT) + tuple(tags)


def category_groups(rules: Sequence[RoutingRule], nodes: Sequence[ProxyNode]) -> List[ProxyGroup]:
    """One manual group per distinct rule target that names a rule category, in rule order."""
    tags = [n.tag for n in nodes]
    taken = set(tags) | set(SENTINELS) | {SELECT_GROUP, AUTO_GROUP, FALLBACK_GROUP}
    groups: List[ProxyGroup] = []
    for rule in rules:
        if rule.target in taken:
            continue
        category = lookup(rule.target)
        if category is None or category.outbound != rule.target:
            continue
        taken.add(rule.target)
        groups.append(ProxyGroup(rule.target, Strategy.MANUAL, _category_members(category, tags)))
    return groups


def country_groups(nodes: Sequence[ProxyNode], warnings: List[BuildWarning],
                   geoip_db: str = GEOIP_DB) -> List[ProxyGroup]:
    """Group nodes by detected region, in first-seen order. Undetected nodes stay ungrouped."""
    reader: Optional[geoip2.database.Reader] = None
    if geoip_db:
        if os.path.exists(geoip_db):
            reader = geoip2.database.Reader(geoip_db)
        else:
            warnings.append(BuildWarning('groups', geoip_db, 'GeoIP database not found'))
    try:
        order: List[str] = []
        members: Dict[str, List[str]] = {}
        for node in nodes:
            cc = detect_country(node.tag, node.server, reader)
            if cc is None:
                continue
            if cc not in members:
                members[cc] = []
                order.append(cc)
            members[cc].append(node.tag)
    finally:
        if reader is not None:
            reader.close()

    taken = {n.tag for n in nodes}
    groups = []
    for cc in order:
        name = country_group_name(cc)
        i = 2
        while name in taken:
            name = f"{country_group_name(cc)} ({i})"
            i += 1
        taken.add(name)
        groups.append(ProxyGroup(name, Strategy.MANUAL, tuple(members[cc])))
    return groups


def check_targets(rules: Sequence[RoutingRule], groups: Sequence[ProxyGroup], nodes: Sequence[ProxyNode]) -> None:
    known: Set[str] = {n.tag for n in nodes} | {g.name for g in groups} | set(SENTINELS)
    for rule in rules:
        if rule.target not in known:
            raise ConfigError(
                f"rule from {rule.source!r} targets {rule.target!r}, which is not a node, group or sentinel"
            )
    for group in groups:
        for member in group.members:
            if member not in known:
                raise ConfigError(f"group {group.name!r} references unknown member {member!r}")


def check_acyclic(groups: Sequence[ProxyGroup]) -> None:
    edges = {g.name: list(g.members) for g in groups}
    state: Dict[str, int] = {}

    def visit(name: str, path: List[str]) -> None:
        state[name] = 1
        for member in edges[name]:
            if member not in edges:
                continue
            if state.get(member) == 1:
                raise ConfigError('group cycle: ' + ' -> '.join(path + [name, member]))
            if member not in state:
                visit(member, path + [name])
        state[name] = 2

    for name in edges:
        if name not in state:
            visit(name, [])


def synthesize(nodes: Sequence[ProxyNode], rules: Sequence[RoutingRule], group_by_country: bool = False,
               fallback_group: bool = False, geoip_db: str = GEOIP_DB) -> Tuple[List[ProxyGroup], List[BuildWarning]]:
    """Derive proxy groups from nodes and rules and check that every rule target resolves.

    Produces ``select`` (manual, the primary group), ``auto`` (latency test
    over all nodes), optionally ``fallback`` and per-country groups, and one
    group per rule category referenced by the rules.
    """
    if not nodes:
        raise ConfigError('no usable proxy nodes in subscription')
    warnings: List[BuildWarning] = []
    tags = tuple(n.tag for n in nodes)

    extra = country_groups(nodes, warnings, geoip_db) if group_by_country else []
    select_members: Tuple[str, ...] = (AUTO_GROUP,)
    if fallback_group:
        select_members += (FALLBACK_GROUP,)
    select_members += tuple(g.name for g in extra) + tags

    groups = [
        ProxyGroup(SELECT_GROUP, Strategy.MANUAL, select_members),
        ProxyGroup(AUTO_GROUP, Strategy.LATENCY, tags),
    ]
    if fallback_group:
        groups.append(ProxyGroup(FALLBACK_GROUP, Strategy.FALLBACK, tags))
    groups.extend(extra)
    groups.extend(category_groups(rules, nodes))

    check_targets(rules, groups, nodes)
    check_acyclic(groups)
    return groups, warnings
