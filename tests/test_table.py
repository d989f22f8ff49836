import pytest

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
from nftkit.table import (
    NFTA_TABLE_FLAGS,
    NFTA_TABLE_NAME,
    NFTA_TABLE_USE,
    Table,
    TableFamily,
    add_table,
    del_table,
    flush_table,
    list_tables_request,
    table_from_message,
)


def test_add_table_message():
    table = Table(name="filter", family=TableFamily.IPV4)
    msg = add_table(table)
    assert msg.type == NFT_SUBSYS_BASE | NFT_MSG_NEWTABLE
    assert msg.flags == NLM_F_REQUEST | NLM_F_ACK | NLM_F_CREATE
    assert msg.data[:4] == extra_header(TableFamily.IPV4, 0)
    attrs = parse_attributes(msg.data[4:])
    assert [a.kind for a in attrs] == [NFTA_TABLE_NAME, NFTA_TABLE_FLAGS]
    assert attrs[0].as_str() == "filter"
    assert attrs[1].data == bytes(4)


def test_del_table_message():
    msg = del_table(Table(name="nat", family=TableFamily.IPV6))
    assert msg.type == NFT_SUBSYS_BASE | NFT_MSG_DELTABLE
    assert msg.flags == NLM_F_REQUEST | NLM_F_ACK
    assert msg.data[0] == TableFamily.IPV6
    assert parse_attributes(msg.data[4:])[0].as_str() == "nat"


def test_flush_table_message():
    msg = flush_table(Table(name="filter", family=TableFamily.INET))
    assert msg.type == NFT_SUBSYS_BASE | NFT_MSG_DELRULE
    assert msg.flags == NLM_F_REQUEST | NLM_F_ACK
    attrs = parse_attributes(msg.data[4:])
    assert len(attrs) == 1
    assert attrs[0].as_str() == "filter"


def test_list_tables_request():
    msg = list_tables_request()
    assert msg.type == NFT_SUBSYS_BASE | NFT_MSG_GETTABLE
    assert msg.flags == NLM_F_REQUEST | NLM_F_DUMP
    assert msg.data == extra_header(TableFamily.UNSPECIFIED, 0)
    assert list_tables_request(TableFamily.BRIDGE).data[0] == TableFamily.BRIDGE


def test_table_round_trip_through_add_message():
    table = Table(name="filter", family=TableFamily.IPV4)
    assert table_from_message(add_table(table)) == table


def test_table_from_message_reads_use_and_flags():
    data = extra_header(TableFamily.INET, 0) + marshal_attributes([
        Attribute.from_str(NFTA_TABLE_NAME, "mangle"),
        Attribute.from_uint32(NFTA_TABLE_USE, 3),
        Attribute.from_uint32(NFTA_TABLE_FLAGS, 1),
        Attribute(99, b"ignored"),
    ])
    msg = Message(type=NFT_SUBSYS_BASE | NFT_MSG_NEWTABLE, data=data)
    assert table_from_message(msg) == Table(
        name="mangle", use=3, flags=1, family=TableFamily.INET
    )


def test_table_from_message_rejects_wrong_type():
    msg = del_table(Table(name="filter"))
    with pytest.raises(NetlinkError):
        table_from_message(msg)


def test_table_from_message_rejects_short_payload():
    with pytest.raises(NetlinkError):
        table_from_message(Message(type=NFT_SUBSYS_BASE | NFT_MSG_NEWTABLE, data=b"\x02"))


def test_unknown_family_is_kept():
    data = extra_header(99, 0) + marshal_attributes([Attribute.from_str(NFTA_TABLE_NAME, "t")])
    table = table_from_message(Message(type=NFT_SUBSYS_BASE | NFT_MSG_NEWTABLE, data=data))
    assert table.family == 99
    assert table.name == "t"