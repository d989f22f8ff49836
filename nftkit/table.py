"""nftables tables: request builders and reply decoding."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from nftkit.netlink import (
    NFT_MSG_DELRULE,
    NFT_MSG_DELTABLE,
    NFT_MSG_GETTABLE,
    NFT_MSG_NEWTABLE,
    NFT_SUBSYS_BASE,
    NLM_F_ACK,
    NLM_F_CREATE,
    NLM_F_DUMP,
    NLM_F_REQUEST,
    Attribute,
    Message,
    NetlinkError,
    extra_header,
    marshal_attributes,
    parse_attributes,
)

NFTA_TABLE_NAME = 1
NFTA_TABLE_FLAGS = 2
NFTA_TABLE_USE = 3

_NFTA_RULE_TABLE = 1

TABLE_HEADER_TYPE = NFT_SUBSYS_BASE | NFT_MSG_NEWTABLE


class TableFamily(enum.IntEnum):
    """Address family of a table."""

    UNSPECIFIED = 0
    INET = 1
    IPV4 = 2
    ARP = 3
    NETDEV = 5
    BRIDGE = 7
    IPV6 = 10


@dataclass
class Table:
    """A table holds chains."""

    name: str
    use: int = 0
    flags: int = 0
    family: TableFamily | int = TableFamily.UNSPECIFIED


def _family(value: int) -> TableFamily | int:
    try:
        return TableFamily(value)
    except ValueError:
        return value


def _name_and_flags(table: Table) -> bytes:
    return marshal_attributes([
        Attribute.from_str(NFTA_TABLE_NAME, table.name),
        Attribute(NFTA_TABLE_FLAGS, bytes(4)),
    ])


def add_table(table: Table) -> Message:
    """Build the request that creates ``table``."""
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_NEWTABLE,
        flags=NLM_F_REQUEST | NLM_F_ACK | NLM_F_CREATE,
        data=extra_header(table.family, 0) + _name_and_flags(table),
    )


def del_table(table: Table) -> Message:
    """Build the request that deletes ``table`` with everything in it."""
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_DELTABLE,
        flags=NLM_F_REQUEST | NLM_F_ACK,
        data=extra_header(table.family, 0) + _name_and_flags(table),
    )


def flush_table(table: Table) -> Message:
    """Build the request that removes every rule in every chain of ``table``."""
    data = marshal_attributes([Attribute.from_str(_NFTA_RULE_TABLE, table.name)])
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_DELRULE,
        flags=NLM_F_REQUEST | NLM_F_ACK,
        data=extra_header(table.family, 0) + data,
    )


def list_tables_request(family: TableFamily | int = TableFamily.UNSPECIFIED) -> Message:
    """Build the dump request for tables of ``family`` (all when unspecified)."""
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_GETTABLE,
        flags=NLM_F_REQUEST | NLM_F_DUMP,
        data=extra_header(family, 0),
    )


def table_from_message(msg: Message) -> Table:
    """Decode a NEWTABLE message into a Table."""
    if msg.type != TABLE_HEADER_TYPE:
        raise NetlinkError(
            f"unexpected header type: got {msg.type}, want {TABLE_HEADER_TYPE}"
        )
    if len(msg.data) < 4:
        raise NetlinkError("table message too short")
    table = Table(name="", family=_family(msg.data[0]))
    for attr in parse_attributes(msg.data[4:]):
        if attr.kind == NFTA_TABLE_NAME:
            table.name = attr.as_str()
        elif attr.kind == NFTA_TABLE_USE:
            table.use = attr.as_uint32()
        elif attr.kind == NFTA_TABLE_FLAGS:
            table.flags = attr.as_uint32()
    return table