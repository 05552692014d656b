"""
header_rules.py — Validate flexible header rows against a template.

A template declares a fixed prefix of columns plus ordered rule groups for
the open-ended tail. Each rule value becomes a graph node:

    groups = [HeaderRuleGroup([HeaderRule("a"), HeaderRule("b")]),
              HeaderRuleGroup([HeaderRule("c"), HeaderRule("d")], repeating=True)]

    a -> b -> c -> d -> {c, a}

A rule marked repeating gets a self edge. The last value of a group links to
the first value of the next group (wrapping around when there is more than
one group) and, for a repeating group, back to its own first value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence


@dataclass(frozen=True)
class HeaderRule:
    value: str
    repeating: bool = False


@dataclass(frozen=True)
class HeaderRuleGroup:
    rules: tuple[HeaderRule, ...]
    repeating: bool = False

    def __init__(self, rules: Iterable[HeaderRule], repeating: bool = False) -> None:
        object.__setattr__(self, "rules", tuple(rules))
        object.__setattr__(self, "repeating", repeating)

    @property
    def values(self) -> list[str]:
        return [rule.value for rule in self.rules]


@dataclass(frozen=True)
class HeaderRuleNode:
    value: str
    next_indexes: tuple[int, ...]


def is_blank_row(cells: Sequence[str] | None) -> bool:
    if not cells:
        return True
    return all(not str(cell or "").strip() for cell in cells)


def equal_rows(a: Sequence[str] | None, b: Sequence[str] | None) -> bool:
    a = list(a or [])
    b = list(b or [])
    return len(a) == len(b) and all(left == right for left, right in zip(a, b))


def compact_header(cells: Sequence[str] | None) -> list[str]:
    """Trim header cells and drop the blank ones."""
    compacted: list[str] = []
    for cell in cells or []:
        value = str(cell or "").strip()
        if value:
            compacted.append(value)
    return compacted


def build_rule_nodes(rule_groups: Sequence[HeaderRuleGroup]) -> tuple[HeaderRuleNode, ...]:
    node_index: dict[str, int] = {}
    next_values: dict[str, list[str]] = {}
    values_in_order: list[str] = []
    group_count = len(rule_groups)

    for group_pos, group in enumerate(rule_groups):
        rules = group.rules
        for rule_pos, rule in enumerate(rules):
            value = rule.value
            # A value repeated across groups shares one node and merges its edges.
            node_index[value] = len(values_in_order)
            values_in_order.append(value)
            edges = next_values.setdefault(value, [])
            if rule.repeating:
                edges.append(value)
            if rule_pos == len(rules) - 1:
                if group.repeating:
                    edges.append(rules[0].value)
                if group_count > 1:
                    edges.append(rule_groups[(group_pos + 1) % group_count].rules[0].value)
            else:
                edges.append(rules[rule_pos + 1].value)

    return tuple(
        HeaderRuleNode(value, tuple(node_index[target] for target in next_values[value]))
        for value in values_in_order
    )


class HeaderRuleValidator:
    def __init__(
        self,
        fixed_column_count: int,
        rule_groups: Sequence[HeaderRuleGroup],
        allowed_start_values: Iterable[str] = (),
        allowed_end_values: Iterable[str] | None = None,
    ) -> None:
        rule_groups = tuple(rule_groups)
        for position, group in enumerate(rule_groups):
            if not group.rules:
                raise ValueError(f"Header rule group {position} has no rules")
        if fixed_column_count < 0:
            raise ValueError("fixed_column_count must be >= 0")

        self.fixed_column_count = fixed_column_count
        self.rule_groups = rule_groups
        self.allowed_start_values = frozenset(allowed_start_values)
        if allowed_end_values is None:
            # Without rule groups only an exact template match can pass.
            allowed_end_values = [rule_groups[-1].rules[-1].value] if rule_groups else []
        self.allowed_end_values = frozenset(allowed_end_values)
        self.nodes = build_rule_nodes(rule_groups)

    def validate(self, template_header: Sequence[str], uploaded_header: Sequence[str]) -> bool:
        template = list(template_header or [])
        uploaded = compact_header(uploaded_header)
        fixed = self.fixed_column_count

        if (
            len(uploaded) < fixed
            or len(template) < fixed
            or len(uploaded) < len(template)
            or len(uploaded) == 0
        ):
            return False

        # Same width as the template: no extra columns to walk.
        if len(uploaded) == len(template):
            return equal_rows(template, uploaded)

        return (
            self._validate_fixed(template, uploaded)
            and self._validate_end(uploaded)
            and self._validate_walk(uploaded)
        )

    def _validate_fixed(self, template: list[str], uploaded: list[str]) -> bool:
        fixed = self.fixed_column_count
        if fixed == 0:
            if template:
                return False
            return uploaded[0] in self.allowed_start_values
        return uploaded[:fixed] == template[:fixed]

    def _validate_end(self, uploaded: list[str]) -> bool:
        return uploaded[-1] in self.allowed_end_values

    def _validate_walk(self, uploaded: list[str]) -> bool:
        nodes = self.nodes
        position = self.fixed_column_count

        current = next((i for i, node in enumerate(nodes) if node.value == uploaded[position]), None)
        if current is None:
            return False

        for value in uploaded[position + 1 :]:
            for target in nodes[current].next_indexes:
                if nodes[target].value == value:
                    current = target
                    break
            else:
                return False
        return True
