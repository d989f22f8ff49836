"""Encoding and decoding of match and target info payloads by name."""

from __future__ import annotations

from nftkit.table import TableFamily
from nftkit.xt.matches import (
    AddrType,
    AddrTypeV1,
    ConntrackMtinfo1,
    ConntrackMtinfo2,
    ConntrackMtinfo3,
    Tcp,
    Udp,
)
from nftkit.xt.targets import (
    NatIPv4MultiRangeCompat,
    NatRange,
    NatRange2,
    Unknown,
)


def marshal(fam: int, rev: int, info) -> bytes:
    """Encode ``info`` for a table of family ``fam`` at revision ``rev``."""
    return info.marshal(fam, rev)


def _dnat_v6(rev: int):
    return {1: NatRange, 2: NatRange2}.get(rev)


def _info_type(name: str, fam: int, rev: int):
    if name == "addrtype":
        return {0: AddrType, 1: AddrTypeV1}.get(rev)
    if name == "conntrack":
        return {1: ConntrackMtinfo1, 2: ConntrackMtinfo2, 3: ConntrackMtinfo3}.get(rev)
    if name == "tcp":
        return Tcp
    if name == "udp":
        return Udp
    if name == "SNAT":
        return NatIPv4MultiRangeCompat if fam == TableFamily.IPV4 else None
    if name == "DNAT":
        if fam == TableFamily.IPV4 and rev == 0:
            return NatIPv4MultiRangeCompat
        if fam in (TableFamily.IPV4, TableFamily.IPV6):
            return _dnat_v6(rev)
        return None
    if name == "MASQUERADE":
        return NatIPv4MultiRangeCompat if fam == TableFamily.IPV4 else None
    if name == "REDIRECT":
        if fam == TableFamily.IPV4 and rev == 0:
            return NatIPv4MultiRangeCompat
        if fam in (TableFamily.IPV4, TableFamily.IPV6):
            return NatRange
        return None
    return None


def unmarshal(name: str, fam: int, rev: int, data: bytes):
    """Decode an info payload into the type that ``name``, ``fam`` and ``rev`` select.

    Payloads without a dedicated type are returned as Unknown.
    """
    info_type = _info_type(name, fam, rev) or Unknown
    return info_type.unmarshal(fam, rev, data)