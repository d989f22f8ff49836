"""nftables rules: request builders and reply decoding.

Expressions are carried as their encoded payloads, i.e. the data of each
NFTA_LIST_ELEM inside NFTA_RULE_EXPRESSIONS.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from nftkit.netlink import (
    NFT_MSG_DELRULE,
    NFT_MSG_GETRULE,
    NFT_MSG_NEWRULE,
    NFT_SUBSYS_BASE,
    NLA_F_NESTED,
    NLM_F_ACK,
    NLM_F_APPEND,
    NLM_F_CREATE,
    NLM_F_DUMP,
    NLM_F_ECHO,
    NLM_F_REPLACE,
    NLM_F_REQUEST,
    Attribute,
    Message,
    NetlinkError,
    extra_header,
    marshal_attributes,
    parse_attributes,
)
from nftkit.table import Table, TableFamily

NFTA_LIST_ELEM = 1

NFTA_RULE_TABLE = 1
NFTA_RULE_CHAIN = 2
NFTA_RULE_HANDLE = 3
NFTA_RULE_EXPRESSIONS = 4
NFTA_RULE_COMPAT = 5
NFTA_RULE_POSITION = 6
NFTA_RULE_USERDATA = 7

RULE_HEADER_TYPE = NFT_SUBSYS_BASE | NFT_MSG_NEWRULE

# Flag asking for the position attribute even when the position is 0.
RULE_FLAG_POSITION = 1 << NFTA_RULE_POSITION


class RuleOperation(enum.Enum):
    """How a rule request places the rule."""

    ADD = 0
    INSERT = 1
    REPLACE = 2


_OPERATION_FLAGS = {
    RuleOperation.ADD: NLM_F_REQUEST | NLM_F_ACK | NLM_F_CREATE | NLM_F_ECHO | NLM_F_APPEND,
    RuleOperation.INSERT: NLM_F_REQUEST | NLM_F_ACK | NLM_F_CREATE | NLM_F_ECHO,
    RuleOperation.REPLACE: NLM_F_REQUEST | NLM_F_ACK | NLM_F_REPLACE | NLM_F_ECHO,
}


@dataclass
class Rule:
    """A rule in a chain; ``chain`` is the chain name."""

    table: Table
    chain: str
    position: int = 0
    handle: int = 0
    flags: int = 0
    exprs: list[bytes] = field(default_factory=list)
    user_data: bytes | None = None


def _table_and_chain(rule: Rule) -> list[Attribute]:
    return [
        Attribute.from_str(NFTA_RULE_TABLE, rule.table.name),
        Attribute.from_str(NFTA_RULE_CHAIN, rule.chain),
    ]


def new_rule(rule: Rule, op: RuleOperation) -> Message:
    """Build the NEWRULE request for ``rule`` with the given placement."""
    attrs = _table_and_chain(rule)
    if rule.handle:
        attrs.append(Attribute.from_uint64(NFTA_RULE_HANDLE, rule.handle))
    expressions = marshal_attributes(
        Attribute(NLA_F_NESTED | NFTA_LIST_ELEM, bytes(expr)) for expr in rule.exprs
    )
    attrs.append(Attribute(NLA_F_NESTED | NFTA_RULE_EXPRESSIONS, expressions))
    if rule.user_data is not None:
        attrs.append(Attribute(NFTA_RULE_USERDATA, bytes(rule.user_data)))
    if rule.position or rule.flags & RULE_FLAG_POSITION:
        attrs.append(Attribute.from_uint64(NFTA_RULE_POSITION, rule.position))
    return Message(
        type=RULE_HEADER_TYPE,
        flags=_OPERATION_FLAGS[RuleOperation(op)],
        data=extra_header(rule.table.family, 0) + marshal_attributes(attrs),
    )


def add_rule(rule: Rule) -> Message:
    """Append ``rule``, or replace it when it already has a handle."""
    return new_rule(rule, RuleOperation.REPLACE if rule.handle else RuleOperation.ADD)


def insert_rule(rule: Rule) -> Message:
    """Insert ``rule``, or replace it when it already has a handle."""
    return new_rule(rule, RuleOperation.REPLACE if rule.handle else RuleOperation.INSERT)


def replace_rule(rule: Rule) -> Message:
    """Replace the rule with ``rule.handle``."""
    return new_rule(rule, RuleOperation.REPLACE)


def del_rule(rule: Rule) -> Message:
    """Build the request that deletes ``rule``; its handle must be set."""
    if not rule.handle:
        raise ValueError("rule's handle cannot be 0")
    attrs = _table_and_chain(rule)
    attrs.append(Attribute.from_uint64(NFTA_RULE_HANDLE, rule.handle))
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_DELRULE,
        flags=NLM_F_REQUEST | NLM_F_ACK,
        data=extra_header(rule.table.family, 0) + marshal_attributes(attrs),
    )


def get_rules_request(table: Table, chain: str) -> Message:
    """Build the dump request for the rules of ``chain`` in ``table``."""
    data = marshal_attributes([
        Attribute.from_str(NFTA_RULE_TABLE, table.name),
        Attribute.from_str(NFTA_RULE_CHAIN, chain),
    ])
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_GETRULE,
        flags=NLM_F_REQUEST | NLM_F_ACK | NLM_F_DUMP | NLM_F_ECHO,
        data=extra_header(table.family, 0) + data,
    )


def rule_from_message(family: TableFamily | int, msg: Message) -> Rule:
    """Decode a NEWRULE message into a Rule of a table in ``family``."""
    if msg.type != RULE_HEADER_TYPE:
        raise NetlinkError(
            f"unexpected header type: got {msg.type}, want {RULE_HEADER_TYPE}"
        )
    if len(msg.data) < 4:
        raise NetlinkError("rule message too short")
    rule = Rule(table=Table(name="", family=family), chain="")
    for attr in parse_attributes(msg.data[4:]):
        kind = attr.kind
        if kind == NFTA_RULE_TABLE:
            rule.table = Table(name=attr.as_str(), family=family)
        elif kind == NFTA_RULE_CHAIN:
            rule.chain = attr.as_str()
        elif kind == NFTA_RULE_EXPRESSIONS:
            rule.exprs = [
                elem.data
                for elem in parse_attributes(attr.data)
                if elem.kind == NFTA_LIST_ELEM
            ]
        elif kind == NFTA_RULE_POSITION:
            rule.position = attr.as_uint64()
        elif kind == NFTA_RULE_HANDLE:
            rule.handle = attr.as_uint64()
        elif kind == NFTA_RULE_USERDATA:
            rule.user_data = attr.data
    return rule