"""nftables sets and maps: request builders and reply decoding."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field, replace
from datetime import timedelta

from nftkit.datatypes import (
    TYPE_INVALID,
    TYPE_VERDICT,
    SetDatatype,
    concat_set_type_elements,
    datatype_by_magic,
    validate_key_type,
)
from nftkit.netlink import (
    NFT_MSG_DELSET,
    NFT_MSG_DELSETELEM,
    NFT_MSG_GETSET,
    NFT_MSG_GETSETELEM,
    NFT_MSG_NEWSET,
    NFT_MSG_NEWSETELEM,
    NFT_SUBSYS_BASE,
    NLA_F_NESTED,
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
from nftkit.table import Table

NFTA_LIST_ELEM = 1

NFTA_SET_TABLE = 1
NFTA_SET_NAME = 2
NFTA_SET_FLAGS = 3
NFTA_SET_KEY_TYPE = 4
NFTA_SET_KEY_LEN = 5
NFTA_SET_DATA_TYPE = 6
NFTA_SET_DATA_LEN = 7
NFTA_SET_POLICY = 8
NFTA_SET_DESC = 9
NFTA_SET_ID = 10
NFTA_SET_TIMEOUT = 11
NFTA_SET_GC_INTERVAL = 12
NFTA_SET_USERDATA = 13

NFTA_SET_DESC_SIZE = 1
NFTA_SET_DESC_CONCAT = 2

NFT_SET_ANONYMOUS = 0x1
NFT_SET_CONSTANT = 0x2
NFT_SET_INTERVAL = 0x4
NFT_SET_MAP = 0x8
NFT_SET_TIMEOUT = 0x10
NFT_SET_EVAL = 0x20
NFT_SET_OBJECT = 0x40
NFT_SET_CONCAT = 0x80

NFTA_SET_ELEM_KEY = 1
NFTA_SET_ELEM_DATA = 2
NFTA_SET_ELEM_FLAGS = 3
NFTA_SET_ELEM_TIMEOUT = 4
NFTA_SET_ELEM_KEY_END = 10

NFT_SET_ELEM_INTERVAL_END = 0x1

NFTA_SET_ELEM_LIST_TABLE = 1
NFTA_SET_ELEM_LIST_SET = 2
NFTA_SET_ELEM_LIST_ELEMENTS = 3
NFTA_SET_ELEM_LIST_SET_ID = 4

NFTA_LOOKUP_SET_ID = 4

NFTA_DATA_VALUE = 1
NFTA_DATA_VERDICT = 2

NFT_DATA_VERDICT = 0xFFFFFF00

SET_HEADER_TYPE = NFT_SUBSYS_BASE | NFT_MSG_NEWSET
ELEM_HEADER_TYPE = NFT_SUBSYS_BASE | NFT_MSG_NEWSETELEM

# Semantically useless user data, kept identical to what nft sends.
_USERDATA_FIXED = b"\x00\x04\x02\x00\x00\x00"
_USERDATA_PLAIN = b"\x00\x04\x01\x00\x00\x00"

_set_ids = itertools.count(1)
_set_ids_lock = threading.Lock()


def _next_set_id() -> int:
    with _set_ids_lock:
        return next(_set_ids) & 0xFFFFFFFF


def _milliseconds(duration: timedelta) -> int:
    return (duration // timedelta(milliseconds=1)) & 0xFFFFFFFFFFFFFFFF


@dataclass
class VerdictData:
    """A verdict stored as the value of a verdict map element."""

    kind: int
    chain: str = ""


@dataclass
class Set:
    """An nftables set or map.

    Anonymous sets are only valid within a single batch.
    """

    table: Table | None = None
    name: str = ""
    id: int = 0
    anonymous: bool = False
    constant: bool = False
    interval: bool = False
    is_map: bool = False
    has_timeout: bool = False
    dynamic: bool = False
    concatenation: bool = False
    timeout: timedelta = field(default_factory=timedelta)
    key_type: SetDatatype = TYPE_INVALID
    data_type: SetDatatype = TYPE_INVALID


@dataclass
class SetElement:
    """One data point of a set or map.

    When ``verdict`` is given it is sent as the element's value and ``val``
    is ignored.
    """

    key: bytes = b""
    val: bytes = b""
    key_end: bytes = b""
    interval_end: bool = False
    verdict: VerdictData | None = None
    timeout: timedelta = field(default_factory=timedelta)


def _table_of(nft_set: Set) -> Table:
    if nft_set.table is None:
        raise ValueError(f"set {nft_set.name!r} has no table")
    return nft_set.table


def _data_value(data: bytes) -> bytes:
    return marshal_attributes([Attribute(NFTA_DATA_VALUE, bytes(data))])


def _encode_element(nft_set: Set, elem: SetElement) -> bytes:
    item = []
    if elem.interval_end:
        item.append(Attribute.from_uint32(
            NFTA_SET_ELEM_FLAGS | NLA_F_NESTED, NFT_SET_ELEM_INTERVAL_END
        ))
    item.append(Attribute(NFTA_SET_ELEM_KEY | NLA_F_NESTED, _data_value(elem.key)))
    if elem.key_end:
        item.append(Attribute(
            NFTA_SET_ELEM_KEY_END | NLA_F_NESTED, _data_value(elem.key_end)
        ))
    if nft_set.has_timeout and elem.timeout:
        item.append(Attribute.from_uint64(
            NFTA_SET_ELEM_TIMEOUT, _milliseconds(elem.timeout)
        ))
    if elem.verdict is not None:
        encoded = marshal_attributes([
            Attribute.from_uint32(NFTA_DATA_VALUE, elem.verdict.kind & 0xFFFFFFFF)
        ])
        if elem.verdict.chain:
            encoded += marshal_attributes([
                Attribute.from_str(NFTA_SET_ELEM_DATA, elem.verdict.chain)
            ])
        verdict = marshal_attributes([
            Attribute(NFTA_SET_ELEM_DATA | NLA_F_NESTED, encoded)
        ])
        item.append(Attribute(NFTA_SET_ELEM_DATA | NLA_F_NESTED, verdict))
    elif elem.val:
        item.append(Attribute(NFTA_SET_ELEM_DATA | NLA_F_NESTED, _data_value(elem.val)))
    return marshal_attributes(item)


def make_element_list(nft_set: Set, elements, set_id: int) -> list[Attribute]:
    """The attributes of a set-element request carrying ``elements``."""
    table = _table_of(nft_set)
    encoded = marshal_attributes(
        Attribute(((index + 1) & 0xFFFF) | NLA_F_NESTED, _encode_element(nft_set, elem))
        for index, elem in enumerate(elements)
    )
    return [
        Attribute.from_str(NFTA_SET_NAME, nft_set.name),
        Attribute.from_uint32(NFTA_LOOKUP_SET_ID, set_id & 0xFFFFFFFF),
        Attribute.from_str(NFTA_SET_TABLE, table.name),
        Attribute(NFTA_SET_ELEM_LIST_ELEMENTS | NLA_F_NESTED, encoded),
    ]


def _set_flags(nft_set: Set) -> int:
    flags = 0
    for enabled, bit in (
        (nft_set.anonymous, NFT_SET_ANONYMOUS),
        (nft_set.constant, NFT_SET_CONSTANT),
        (nft_set.interval, NFT_SET_INTERVAL),
        (nft_set.is_map, NFT_SET_MAP),
        (nft_set.has_timeout, NFT_SET_TIMEOUT),
        (nft_set.dynamic, NFT_SET_EVAL),
        (nft_set.concatenation, NFT_SET_CONCAT),
    ):
        if enabled:
            flags |= bit
    return flags


def _concat_description(key_type: SetDatatype) -> bytes:
    definition = b"".join(
        marshal_attributes([
            Attribute(NFTA_SET_DESC_SIZE, marshal_attributes([
                Attribute.from_uint32(NFTA_DATA_VALUE, member.size)
            ]))
        ])
        for member in concat_set_type_elements(key_type)
    )
    return marshal_attributes([Attribute(NLA_F_NESTED | NFTA_SET_DESC_CONCAT, definition)])


def _element_message(nft_set: Set, elements, msg_type: int) -> Message:
    table = _table_of(nft_set)
    attrs = make_element_list(nft_set, elements, nft_set.id)
    return Message(
        type=NFT_SUBSYS_BASE | msg_type,
        flags=NLM_F_REQUEST | NLM_F_ACK | NLM_F_CREATE,
        data=extra_header(table.family, 0) + marshal_attributes(attrs),
    )


def add_set(nft_set: Set, elements=()) -> list[Message]:
    """Build the requests that create ``nft_set`` and fill it with ``elements``.

    A set without an id gets a fresh one; anonymous sets are also renamed.
    """
    elements = list(elements)
    if nft_set.anonymous and not nft_set.constant:
        raise ValueError("anonymous structs must be constant")
    table = _table_of(nft_set)

    if nft_set.id == 0:
        nft_set.id = _next_set_id()
        if nft_set.anonymous:
            nft_set.name = "__map%d" if nft_set.is_map else "__set%d"

    attrs = [
        Attribute.from_str(NFTA_SET_TABLE, table.name),
        Attribute.from_str(NFTA_SET_NAME, nft_set.name),
        Attribute.from_uint32(NFTA_SET_FLAGS, _set_flags(nft_set)),
        Attribute.from_uint32(NFTA_SET_KEY_TYPE, nft_set.key_type.nft_magic),
        Attribute.from_uint32(NFTA_SET_KEY_LEN, nft_set.key_type.size),
        Attribute.from_uint32(NFTA_SET_ID, nft_set.id),
    ]
    if nft_set.is_map:
        data_magic = nft_set.data_type.nft_magic
        if data_magic == TYPE_VERDICT.nft_magic:
            data_magic = NFT_DATA_VERDICT
        attrs.append(Attribute.from_uint32(NFTA_SET_DATA_TYPE, data_magic))
        attrs.append(Attribute.from_uint32(NFTA_SET_DATA_LEN, nft_set.data_type.size))
    if nft_set.has_timeout and nft_set.timeout:
        attrs.append(Attribute.from_uint64(NFTA_SET_TIMEOUT, _milliseconds(nft_set.timeout)))
    if nft_set.constant:
        count = marshal_attributes([
            Attribute.from_uint32(NFTA_DATA_VALUE, len(elements) & 0xFFFFFFFF)
        ])
        attrs.append(Attribute(NLA_F_NESTED | NFTA_SET_DESC, count))
    if nft_set.concatenation:
        attrs.append(Attribute(
            NLA_F_NESTED | NFTA_SET_DESC, _concat_description(nft_set.key_type)
        ))
    if nft_set.anonymous or nft_set.constant or nft_set.interval:
        attrs.append(Attribute(NFTA_SET_USERDATA, _USERDATA_FIXED))
    elif not nft_set.is_map:
        attrs.append(Attribute(NFTA_SET_USERDATA, _USERDATA_PLAIN))

    messages = [Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_NEWSET,
        flags=NLM_F_REQUEST | NLM_F_ACK | NLM_F_CREATE,
        data=extra_header(table.family, 0) + marshal_attributes(attrs),
    )]
    if elements:
        messages.append(_element_message(nft_set, elements, NFT_MSG_NEWSETELEM))
    return messages


def set_add_elements(nft_set: Set, elements) -> Message:
    """Build the request that adds ``elements`` to a named set."""
    if nft_set.anonymous:
        raise ValueError("anonymous sets cannot be updated")
    return _element_message(nft_set, list(elements), NFT_MSG_NEWSETELEM)


def set_delete_elements(nft_set: Set, elements) -> Message:
    """Build the request that removes ``elements`` from a named set."""
    if nft_set.anonymous:
        raise ValueError("anonymous sets cannot be updated")
    return _element_message(nft_set, list(elements), NFT_MSG_DELSETELEM)


def _table_and_name(nft_set: Set) -> tuple[Table, bytes]:
    table = _table_of(nft_set)
    data = marshal_attributes([
        Attribute.from_str(NFTA_SET_TABLE, table.name),
        Attribute.from_str(NFTA_SET_NAME, nft_set.name),
    ])
    return table, data


def del_set(nft_set: Set) -> Message:
    """Build the request that deletes ``nft_set`` with all its elements."""
    table, data = _table_and_name(nft_set)
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_DELSET,
        flags=NLM_F_REQUEST | NLM_F_ACK,
        data=extra_header(table.family, 0) + data,
    )


def flush_set(nft_set: Set) -> Message:
    """Build the request that removes every element of ``nft_set``."""
    table, data = _table_and_name(nft_set)
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_DELSETELEM,
        flags=NLM_F_REQUEST | NLM_F_ACK,
        data=extra_header(table.family, 0) + data,
    )


def get_sets_request(table: Table) -> Message:
    """Build the dump request for the sets of ``table``."""
    data = marshal_attributes([Attribute.from_str(NFTA_SET_TABLE, table.name)])
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_GETSET,
        flags=NLM_F_REQUEST | NLM_F_ACK | NLM_F_DUMP,
        data=extra_header(table.family, 0) + data,
    )


def get_set_by_name_request(table: Table, name: str) -> Message:
    """Build the request for the single set ``name`` of ``table``."""
    data = marshal_attributes([
        Attribute.from_str(NFTA_SET_TABLE, table.name),
        Attribute.from_str(NFTA_SET_NAME, name),
    ])
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_GETSET,
        flags=NLM_F_REQUEST | NLM_F_ACK,
        data=extra_header(table.family, 0) + data,
    )


def get_set_elements_request(nft_set: Set) -> Message:
    """Build the dump request for the elements of ``nft_set``."""
    table, data = _table_and_name(nft_set)
    return Message(
        type=NFT_SUBSYS_BASE | NFT_MSG_GETSETELEM,
        flags=NLM_F_REQUEST | NLM_F_ACK | NLM_F_DUMP,
        data=extra_header(table.family, 0) + data,
    )


def set_from_message(msg: Message) -> Set:
    """Decode a NEWSET message; the caller fills in the table."""
    if msg.type != SET_HEADER_TYPE:
        raise NetlinkError(
            f"unexpected header type: got {msg.type}, want {SET_HEADER_TYPE}"
        )
    if len(msg.data) < 4:
        raise NetlinkError("set message too short")
    nft_set = Set()
    for attr in parse_attributes(msg.data[4:]):
        kind = attr.kind
        if kind == NFTA_SET_NAME:
            nft_set.name = attr.as_str()
        elif kind == NFTA_SET_ID:
            nft_set.id = attr.as_uint32()
        elif kind == NFTA_SET_TIMEOUT:
            nft_set.timeout = timedelta(milliseconds=attr.as_uint64())
            nft_set.has_timeout = True
        elif kind == NFTA_SET_FLAGS:
            flags = attr.as_uint32()
            nft_set.constant = bool(flags & NFT_SET_CONSTANT)
            nft_set.anonymous = bool(flags & NFT_SET_ANONYMOUS)
            nft_set.interval = bool(flags & NFT_SET_INTERVAL)
            nft_set.is_map = bool(flags & NFT_SET_MAP)
            nft_set.has_timeout = bool(flags & NFT_SET_TIMEOUT)
            nft_set.concatenation = bool(flags & NFT_SET_CONCAT)
        elif kind == NFTA_SET_KEY_TYPE:
            magic = attr.as_uint32()
            invalid, ok = validate_key_type(magic)
            if not ok:
                raise NetlinkError(f"could not determine key type {invalid}")
            known = datatype_by_magic(magic)
            nft_set.key_type = known if known is not None else replace(
                nft_set.key_type, nft_magic=magic
            )
        elif kind == NFTA_SET_DATA_TYPE:
            magic = attr.as_uint32()
            if magic == NFT_DATA_VERDICT:
                nft_set.key_type = TYPE_VERDICT
                continue
            known = datatype_by_magic(magic)
            if known is not None:
                nft_set.data_type = known
            if nft_set.data_type.nft_magic == 0:
                raise NetlinkError(f"could not determine data type {magic:x}")
    return nft_set


def _decode_value(data: bytes) -> bytes:
    value = b""
    for attr in parse_attributes(data):
        if attr.kind in (NFTA_SET_ELEM_KEY, NFTA_SET_ELEM_DATA):
            value = attr.data
    return value


def _decode_element(data: bytes) -> SetElement:
    elem = SetElement()
    for attr in parse_attributes(data):
        kind = attr.kind
        if kind == NFTA_SET_ELEM_KEY:
            elem.key = _decode_value(attr.data)
        elif kind == NFTA_SET_ELEM_KEY_END:
            elem.key_end = _decode_value(attr.data)
        elif kind == NFTA_SET_ELEM_DATA:
            elem.val = _decode_value(attr.data)
        elif kind == NFTA_SET_ELEM_FLAGS:
            elem.interval_end = bool(attr.as_uint32() & NFT_SET_ELEM_INTERVAL_END)
        elif kind == NFTA_SET_ELEM_TIMEOUT:
            elem.timeout = timedelta(milliseconds=attr.as_uint64())
    return elem


def elements_from_message(msg: Message) -> list[SetElement]:
    """Decode the elements carried by a NEWSETELEM message."""
    if msg.type != ELEM_HEADER_TYPE:
        raise NetlinkError(
            f"unexpected header type: got {msg.type}, want {ELEM_HEADER_TYPE}"
        )
    if len(msg.data) < 4:
        raise NetlinkError("set element message too short")
    elements = []
    for attr in parse_attributes(msg.data[4:]):
        if attr.kind != NFTA_SET_ELEM_LIST_ELEMENTS:
            continue
        for inner in parse_attributes(attr.data):
            if inner.kind == NFTA_LIST_ELEM:
                elements.append(_decode_element(inner.data))
            else:
                elements.append(SetElement())
    return elements