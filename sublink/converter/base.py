"""Shared emit pipeline.

A target is a bundle of small functions that map the internal model onto one
client's vocabulary. The pipeline that drives them, including rule ordering
and the reference check, is the same for every target.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Sequence, Set

from ..constants import SELECT_GROUP
from ..errors import ConfigError
from ..models import ProxyGroup, ProxyNode, RoutingRule
from ..rule_sets import CATEGORIES, table_index

Document = Dict[str, Any]
Rename = Callable[[str], str]


def emission_order(rules: Sequence[RoutingRule]) -> List[RoutingRule]:
    """Custom rules first in their given order, then category rules in table order."""
    def key(rule: RoutingRule):
        if rule.is_custom:
            return (0, 0)
        return (1, table_index(rule.source) if rule.source in CATEGORIES else len(CATEGORIES))
    return sorted(rules, key=key)


@dataclass(frozen=True)
class Target:
    name: str
    # internal sentinel name -> name used in this target's documents
    sentinels: Mapping[str, str]
    proxy: Callable[[ProxyNode], Dict[str, Any]]
    group: Callable[[ProxyGroup, Rename], Dict[str, Any]]
    rule: Callable[[RoutingRule, str], List[Any]]
    assemble: Callable[[List[Dict[str, Any]], List[Dict[str, Any]], List[Any], str], Document]
    # names the document refers to, and names it declares
    references: Callable[[Document], Set[str]]
    declarations: Callable[[Document], Set[str]]
    dump: Callable[[Document], str]

    def rename(self, name: str) -> str:
        return self.sentinels.get(name, name)

    def emit(self, nodes: Sequence[ProxyNode], rules: Sequence[RoutingRule],
             groups: Sequence[ProxyGroup]) -> Document:
        proxies = [self.proxy(node) for node in nodes]
        rendered_groups = [self.group(group, self.rename) for group in groups]
        entries: List[Any] = []
        for rule in emission_order(rules):
            entries.extend(self.rule(rule, self.rename(rule.target)))
        document = self.assemble(proxies, rendered_groups, entries, self.rename(SELECT_GROUP))
        self.check(document)
        return document

    def check(self, document: Document) -> None:
        """Raise ConfigError if the document refers to a name it does not declare."""
        missing = self.references(document) - self.declarations(document)
        if missing:
            raise ConfigError(f"{self.name} document references undeclared outbounds: {', '.join(sorted(missing))}")
