import ipaddress

import pytest

from nftkit.table import TableFamily
from nftkit.xt.targets import (
    NatIPv4MultiRangeCompat,
    NatIPv4Range,
    NatRange,
    NatRange2,
    NatRangeFlags,
    Unknown,
)

ip = ipaddress.ip_address


@pytest.mark.parametrize(
    "fam, info",
    [
        (
            TableFamily.IPV4,
            NatRange(flags=0x1234, min_ip=ip("12.23.34.45"), max_ip=ip("21.32.43.54"),
                     min_port=0x5678, max_port=0xABCD),
        ),
        (
            TableFamily.IPV6,
            NatRange(flags=0x1234, min_ip=ip("fe80::dead:beef"), max_ip=ip("fe80::c001:cafe"),
                     min_port=0x5678, max_port=0xABCD),
        ),
        (
            TableFamily.IPV4,
            NatRange2(flags=0x1234, min_ip=ip("12.23.34.45"), max_ip=ip("21.32.43.54"),
                      min_port=0x5678, max_port=0xABCD, base_port=0xFEDC),
        ),
        (
            TableFamily.IPV6,
            NatRange2(flags=0x1234, min_ip=ip("fe80::dead:beef"), max_ip=ip("fe80::c001:cafe"),
                      min_port=0x5678, max_port=0xABCD, base_port=0xFEDC),
        ),
    ],
)
def test_dnat_round_trip(fam, info):
    data = info.marshal(fam, 0)
    assert type(info).unmarshal(fam, 0, data) == info


def test_nat_range_layout():
    info = NatRange(flags=0x1234, min_ip=ip("12.23.34.45"), max_ip=ip("21.32.43.54"),
                    min_port=0x5678, max_port=0xABCD)
    data = info.marshal(TableFamily.IPV4, 0)
    assert len(data) == 40
    assert data[4:8] == bytes([12, 23, 34, 45])
    assert data[8:20] == bytes(12)
    assert data[36:40] == b"\x56\x78\xab\xcd"


def test_nat_range2_padded_to_eight():
    info = NatRange2(flags=1, min_ip=ip("fe80::dead:beef"), max_ip=ip("fe80::c001:cafe"),
                     base_port=0xFEDC)
    data = info.marshal(TableFamily.IPV6, 0)
    assert len(data) % 8 == 0
    assert data[40:42] == b"\xfe\xdc"


def test_nat_range_unsupported_family():
    info = NatRange(min_ip=ip("12.23.34.45"), max_ip=ip("21.32.43.54"))
    with pytest.raises(ValueError):
        info.marshal(TableFamily.INET, 0)


def test_nat_range_short_data():
    with pytest.raises(ValueError):
        NatRange.unmarshal(TableFamily.IPV4, 0, b"\x00" * 10)


def test_masquerade_round_trip():
    info = NatIPv4MultiRangeCompat([
        NatIPv4Range(flags=0x1234, min_ip=ip("12.23.34.45"), max_ip=ip("21.32.43.54"),
                     min_port=0x5678, max_port=0xABCD),
    ])
    data = info.marshal(TableFamily.IPV4, 0)
    assert NatIPv4MultiRangeCompat.unmarshal(TableFamily.IPV4, 0, data) == info


def test_masquerade_layout():
    info = NatIPv4MultiRangeCompat([
        NatIPv4Range(flags=0, min_ip=ip("12.23.34.45"), max_ip=ip("21.32.43.54"),
                     min_port=0x5678, max_port=0xABCD),
    ])
    data = info.marshal(TableFamily.IPV4, 0)
    assert len(data) == 24
    assert data[8:12] == bytes([12, 23, 34, 45])
    assert data[12:16] == bytes([21, 32, 43, 54])
    assert data[16:20] == b"\x56\x78\xab\xcd"


@pytest.mark.parametrize("count", [0, 2])
def test_masquerade_requires_exactly_one_range(count):
    info = NatIPv4MultiRangeCompat([NatIPv4Range() for _ in range(count)])
    with pytest.raises(ValueError):
        info.marshal(TableFamily.IPV4, 0)


def test_nat_range_flags_round_trip():
    info = NatRange(flags=NatRangeFlags.PROTO_RANDOM_ALL, min_ip=ip("12.23.34.45"),
                    max_ip=ip("21.32.43.54"))
    recovered = NatRange.unmarshal(TableFamily.IPV4, 0, info.marshal(TableFamily.IPV4, 0))
    assert recovered.flags == NatRangeFlags.PROTO_RANDOM | NatRangeFlags.PROTO_RANDOM_FULLY
    assert recovered.flags & NatRangeFlags.MASK == recovered.flags


def test_nat_range_flags_mask_round_trip():
    info = NatRange(flags=NatRangeFlags.MASK, min_ip=ip("12.23.34.45"),
                    max_ip=ip("21.32.43.54"))
    recovered = NatRange.unmarshal(TableFamily.IPV4, 0, info.marshal(TableFamily.IPV4, 0))
    assert recovered.flags == 0x7F


def test_unknown_round_trip():
    payload = Unknown(b"\xb0\x1d\xca\xfe\x00")
    data = payload.marshal(0, 0)
    assert data == b"\xb0\x1d\xca\xfe\x00"
    assert Unknown.unmarshal(0, 0, data) == payload