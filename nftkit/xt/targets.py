"""Info payloads of the DNAT, SNAT, MASQUERADE and REDIRECT xtables targets."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass, field
from typing import Union

from nftkit.xt.aligned import AlignedBuffer, get_ipv46, put_ipv46

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address, None]

_IPV4_SIZE = 4


class NatRangeFlags(enum.IntFlag):
    """Flags of a NAT range."""

    MAP_IPS = 1 << 0
    PROTO_SPECIFIED = 1 << 1
    PROTO_RANDOM = 1 << 2
    PERSISTENT = 1 << 3
    PROTO_RANDOM_FULLY = 1 << 4
    PROTO_OFFSET = 1 << 5
    NETMAP = 1 << 6
    MASK = (1 << 7) - 1
    PROTO_RANDOM_ALL = PROTO_RANDOM | PROTO_RANDOM_FULLY


@dataclass
class NatRange:
    """A NAT range; both addresses always take the room of an IPv6 address."""

    flags: int = 0
    min_ip: IPAddress = None
    max_ip: IPAddress = None
    min_port: int = 0
    max_port: int = 0

    def _write(self, buf: AlignedBuffer, fam: int) -> None:
        buf.put_uint(int(self.flags))
        put_ipv46(buf, fam, self.min_ip)
        put_ipv46(buf, fam, self.max_ip)
        buf.put_uint16_be(self.min_port)
        buf.put_uint16_be(self.max_port)

    @classmethod
    def _read(cls, buf: AlignedBuffer, fam: int) -> dict:
        return {
            "flags": buf.uint(),
            "min_ip": get_ipv46(buf, fam),
            "max_ip": get_ipv46(buf, fam),
            "min_port": buf.uint16_be(),
            "max_port": buf.uint16_be(),
        }

    def marshal(self, fam: int, rev: int) -> bytes:
        buf = AlignedBuffer()
        self._write(buf, fam)
        return buf.data()

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "NatRange":
        return cls(**cls._read(AlignedBuffer(data), fam))


@dataclass
class NatRange2(NatRange):
    """A NAT range with a base port for offset mapping."""

    base_port: int = 0

    def _write(self, buf: AlignedBuffer, fam: int) -> None:
        super()._write(buf, fam)
        buf.put_uint16_be(self.base_port)

    @classmethod
    def _read(cls, buf: AlignedBuffer, fam: int) -> dict:
        fields = super()._read(buf, fam)
        fields["base_port"] = buf.uint16_be()
        return fields

    def marshal(self, fam: int, rev: int) -> bytes:
        return super().marshal(fam, rev)

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "NatRange2":
        return super().unmarshal(fam, rev, data)


def _ipv4_bytes(ip) -> bytes:
    if ip is None:
        return b""
    if not isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        ip = ipaddress.ip_address(bytes(ip) if isinstance(ip, (bytes, bytearray)) else ip)
    if isinstance(ip, ipaddress.IPv4Address):
        return ip.packed
    mapped = ip.ipv4_mapped
    return mapped.packed if mapped is not None else b""


@dataclass
class NatIPv4Range:
    """An IPv4-only NAT range."""

    flags: int = 0
    min_ip: IPAddress = None
    max_ip: IPAddress = None
    min_port: int = 0
    max_port: int = 0

    def _write(self, buf: AlignedBuffer) -> None:
        buf.put_uint(int(self.flags))
        buf.put_bytes_aligned32(_ipv4_bytes(self.min_ip), _IPV4_SIZE)
        buf.put_bytes_aligned32(_ipv4_bytes(self.max_ip), _IPV4_SIZE)
        buf.put_uint16_be(self.min_port)
        buf.put_uint16_be(self.max_port)

    @classmethod
    def _read(cls, buf: AlignedBuffer) -> "NatIPv4Range":
        flags = buf.uint()
        min_ip = ipaddress.IPv4Address(buf.bytes_aligned32(_IPV4_SIZE))
        max_ip = ipaddress.IPv4Address(buf.bytes_aligned32(_IPV4_SIZE))
        return cls(
            flags=flags,
            min_ip=min_ip,
            max_ip=max_ip,
            min_port=buf.uint16_be(),
            max_port=buf.uint16_be(),
        )


@dataclass
class NatIPv4MultiRangeCompat:
    """A list of IPv4 NAT ranges that must hold exactly one range."""

    ranges: list[NatIPv4Range] = field(default_factory=list)

    def marshal(self, fam: int, rev: int) -> bytes:
        if len(self.ranges) != 1:
            raise ValueError("MasqueradeIp must contain exactly one NatIPv4Range")
        buf = AlignedBuffer()
        buf.put_uint(len(self.ranges))
        for nat in self.ranges:
            nat._write(buf)
        return buf.data()

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "NatIPv4MultiRangeCompat":
        buf = AlignedBuffer(data)
        count = buf.uint()
        # Ranges are stored from the last slot backwards.
        ranges = [NatIPv4Range._read(buf) for _ in range(count)]
        ranges.reverse()
        return cls(ranges)


@dataclass
class Unknown:
    """Raw info payload of a match or target without a dedicated type.

    It is sent exactly as given, without alignment padding.
    """

    data: bytes = b""

    def marshal(self, fam: int, rev: int) -> bytes:
        return bytes(self.data)

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "Unknown":
        return cls(bytes(data))