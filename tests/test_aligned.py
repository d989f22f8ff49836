import ipaddress
import sys

import pytest

from nftkit.table import TableFamily
from nftkit.xt.aligned import AlignedBuffer, get_ipv46, put_ipv46


def test_empty_buffer_has_no_data():
    assert AlignedBuffer().data() == b""


def test_big_endian_uint16_bytes_and_padding():
    buf = AlignedBuffer()
    buf.put_uint16_be(0x1234)
    data = buf.data()
    assert data[:2] == b"\x12\x34"
    assert len(data) % 8 == 0
    assert data[2:] == bytes(len(data) - 2)


def test_uint32_is_aligned_and_native_order():
    buf = AlignedBuffer()
    buf.put_uint8(0xAB)
    buf.put_uint32(7)
    data = buf.data()
    assert data[0] == 0xAB
    assert data[1:4] == bytes(3)
    assert int.from_bytes(data[4:8], sys.byteorder) == 7


def test_round_trip_mixed_values():
    buf = AlignedBuffer()
    buf.put_uint8(0x12)
    buf.put_uint16(0x3456)
    buf.put_uint8(0x78)
    buf.put_uint32(0x9ABCDEF0)
    buf.put_uint16_be(0xBEEF)
    buf.put_uint(0x1234)
    buf.put_bool32(True)
    buf.put_bool32(False)
    reader = AlignedBuffer(buf.data())
    assert reader.uint8() == 0x12
    assert reader.uint16() == 0x3456
    assert reader.uint8() == 0x78
    assert reader.uint32() == 0x9ABCDEF0
    assert reader.uint16_be() == 0xBEEF
    assert reader.uint() == 0x1234
    assert reader.bool32() is True
    assert reader.bool32() is False


def test_bytes_aligned32_pads_to_size():
    buf = AlignedBuffer()
    buf.put_uint8(1)
    buf.put_bytes_aligned32(b"\xaa\xbb", 6)
    reader = AlignedBuffer(buf.data())
    assert reader.uint8() == 1
    assert reader.bytes_aligned32(6) == b"\xaa\xbb" + bytes(4)


def test_reading_past_end_raises():
    reader = AlignedBuffer(b"\x01")
    assert reader.uint8() == 1
    with pytest.raises(ValueError):
        reader.uint8()


def test_reading_uint32_from_short_data_raises():
    with pytest.raises(ValueError):
        AlignedBuffer(b"\x01\x02").uint32()


def test_value_out_of_range_raises():
    with pytest.raises(ValueError):
        AlignedBuffer().put_uint16(0x10000)


def test_ipv4_address_in_ipv4_table():
    addr = ipaddress.IPv4Address("1.2.3.4")
    buf = AlignedBuffer()
    put_ipv46(buf, TableFamily.IPV4, addr)
    data = buf.data()
    assert data[:4] == addr.packed
    assert data[4:16] == bytes(12)
    assert get_ipv46(AlignedBuffer(data), TableFamily.IPV4) == addr


def test_ipv6_address_round_trip():
    addr = ipaddress.IPv6Address("fe80::dead:beef")
    buf = AlignedBuffer()
    put_ipv46(buf, TableFamily.IPV6, addr)
    assert buf.data()[:16] == addr.packed
    assert get_ipv46(AlignedBuffer(buf.data()), TableFamily.IPV6) == addr


def test_ipv4_address_in_ipv6_table_is_mapped():
    buf = AlignedBuffer()
    put_ipv46(buf, TableFamily.IPV6, ipaddress.IPv4Address("1.2.3.4"))
    got = get_ipv46(AlignedBuffer(buf.data()), TableFamily.IPV6)
    assert got.ipv4_mapped == ipaddress.IPv4Address("1.2.3.4")


def test_missing_address_writes_zeros():
    buf = AlignedBuffer()
    put_ipv46(buf, TableFamily.IPV4, None)
    assert buf.data() == bytes(16)


@pytest.mark.parametrize("fam", [TableFamily.UNSPECIFIED, TableFamily.INET, 99])
def test_unsupported_family_raises(fam):
    with pytest.raises(ValueError, match="unsupported table family"):
        put_ipv46(AlignedBuffer(), fam, ipaddress.IPv4Address("1.2.3.4"))
    with pytest.raises(ValueError, match="unsupported table family"):
        get_ipv46(AlignedBuffer(bytes(16)), fam)