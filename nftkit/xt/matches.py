"""Info payloads of the addrtype, conntrack, tcp and udp xtables matches."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass
from typing import Union

from nftkit.xt.aligned import AlignedBuffer, get_ipv46, put_ipv46

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address, None]


class AddrTypeFlags(enum.IntFlag):
    """Flags of the addrtype match, revision 1."""

    UNSPEC = 1 << 0
    UNICAST = 1 << 1
    LOCAL = 1 << 2
    BROADCAST = 1 << 3
    ANYCAST = 1 << 4
    MULTICAST = 1 << 5
    BLACKHOLE = 1 << 6
    UNREACHABLE = 1 << 7
    PROHIBIT = 1 << 8
    THROW = 1 << 9
    NAT = 1 << 10
    XRESOLVE = 1 << 11


@dataclass
class AddrType:
    """Info of the addrtype match, revision 0.

    Decoding stops quietly at the end of short data, keeping what was read.
    """

    source: int = 0
    dest: int = 0
    invert_source: bool = False
    invert_dest: bool = False

    def marshal(self, fam: int, rev: int) -> bytes:
        buf = AlignedBuffer()
        buf.put_uint16(self.source)
        buf.put_uint16(self.dest)
        buf.put_bool32(self.invert_source)
        buf.put_bool32(self.invert_dest)
        return buf.data()

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "AddrType":
        buf = AlignedBuffer(data)
        info = cls()
        try:
            info.source = buf.uint16()
            info.dest = buf.uint16()
            info.invert_source = buf.bool32()
            info.invert_dest = buf.bool32()
        except ValueError:
            pass
        return info


@dataclass
class AddrTypeV1:
    """Info of the addrtype match, revision 1.

    Decoding stops quietly at the end of short data, keeping what was read.
    """

    source: int = 0
    dest: int = 0
    flags: AddrTypeFlags = AddrTypeFlags(0)

    def marshal(self, fam: int, rev: int) -> bytes:
        buf = AlignedBuffer()
        buf.put_uint16(self.source)
        buf.put_uint16(self.dest)
        buf.put_uint32(int(self.flags))
        return buf.data()

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "AddrTypeV1":
        buf = AlignedBuffer(data)
        info = cls()
        try:
            info.source = buf.uint16()
            info.dest = buf.uint16()
            info.flags = AddrTypeFlags(buf.uint32())
        except ValueError:
            pass
        return info


class ConntrackFlags(enum.IntFlag):
    """Match flags of the conntrack match."""

    STATE = 1 << 0
    PROTO = 1 << 1
    ORIG_SRC = 1 << 2
    ORIG_DST = 1 << 3
    REPL_SRC = 1 << 4
    REPL_DST = 1 << 5
    STATUS = 1 << 6
    EXPIRES = 1 << 7
    ORIG_SRC_PORT = 1 << 8
    ORIG_DST_PORT = 1 << 9
    REPL_SRC_PORT = 1 << 10
    REPL_DST_PORT = 1 << 11
    DIRECTION = 1 << 12
    STATE_ALIAS = 1 << 13


@dataclass
class ConntrackMtinfoBase:
    """Fields shared by all conntrack match revisions.

    Addresses and masks are stored as address objects of the table family.
    """

    orig_src_addr: IPAddress = None
    orig_src_mask: IPAddress = None
    orig_dst_addr: IPAddress = None
    orig_dst_mask: IPAddress = None
    repl_src_addr: IPAddress = None
    repl_src_mask: IPAddress = None
    repl_dst_addr: IPAddress = None
    repl_dst_mask: IPAddress = None
    expires_min: int = 0
    expires_max: int = 0
    l4_proto: int = 0
    orig_src_port: int = 0
    orig_dst_port: int = 0
    repl_src_port: int = 0
    repl_dst_port: int = 0
    match_flags: int = 0
    invert_flags: int = 0

    def _write(self, buf: AlignedBuffer, fam: int) -> None:
        for addr in (
            self.orig_src_addr, self.orig_src_mask,
            self.orig_dst_addr, self.orig_dst_mask,
            self.repl_src_addr, self.repl_src_mask,
            self.repl_dst_addr, self.repl_dst_mask,
        ):
            put_ipv46(buf, fam, addr)
        buf.put_uint32(self.expires_min)
        buf.put_uint32(self.expires_max)
        for value in (
            self.l4_proto, self.orig_src_port, self.orig_dst_port,
            self.repl_src_port, self.repl_dst_port,
            self.match_flags, self.invert_flags,
        ):
            buf.put_uint16(value)

    @classmethod
    def _read(cls, buf: AlignedBuffer, fam: int) -> dict:
        fields = {}
        for name in (
            "orig_src_addr", "orig_src_mask", "orig_dst_addr", "orig_dst_mask",
            "repl_src_addr", "repl_src_mask", "repl_dst_addr", "repl_dst_mask",
        ):
            fields[name] = get_ipv46(buf, fam)
        fields["expires_min"] = buf.uint32()
        fields["expires_max"] = buf.uint32()
        for name in (
            "l4_proto", "orig_src_port", "orig_dst_port", "repl_src_port",
            "repl_dst_port", "match_flags", "invert_flags",
        ):
            fields[name] = buf.uint16()
        return fields

    def marshal(self, fam: int, rev: int) -> bytes:
        buf = AlignedBuffer()
        self._write(buf, fam)
        return buf.data()

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes):
        return cls(**cls._read(AlignedBuffer(data), fam))


@dataclass
class ConntrackMtinfo1(ConntrackMtinfoBase):
    """Info of the conntrack match, revision 1."""

    state_mask: int = 0
    status_mask: int = 0

    def _write(self, buf: AlignedBuffer, fam: int) -> None:
        super()._write(buf, fam)
        buf.put_uint8(self.state_mask)
        buf.put_uint8(self.status_mask)

    @classmethod
    def _read(cls, buf: AlignedBuffer, fam: int) -> dict:
        fields = super()._read(buf, fam)
        fields["state_mask"] = buf.uint8()
        fields["status_mask"] = buf.uint8()
        return fields

    def marshal(self, fam: int, rev: int) -> bytes:
        return super().marshal(fam, rev)

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "ConntrackMtinfo1":
        return super().unmarshal(fam, rev, data)


@dataclass
class ConntrackMtinfo2(ConntrackMtinfoBase):
    """Info of the conntrack match, revision 2."""

    state_mask: int = 0
    status_mask: int = 0

    def _write(self, buf: AlignedBuffer, fam: int) -> None:
        super()._write(buf, fam)
        buf.put_uint16(self.state_mask)
        buf.put_uint16(self.status_mask)

    @classmethod
    def _read(cls, buf: AlignedBuffer, fam: int) -> dict:
        fields = super()._read(buf, fam)
        fields["state_mask"] = buf.uint16()
        fields["status_mask"] = buf.uint16()
        return fields

    def marshal(self, fam: int, rev: int) -> bytes:
        return super().marshal(fam, rev)

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "ConntrackMtinfo2":
        return super().unmarshal(fam, rev, data)


@dataclass
class ConntrackMtinfo3(ConntrackMtinfo2):
    """Info of the conntrack match, revision 3, with port ranges."""

    orig_src_port_high: int = 0
    orig_dst_port_high: int = 0
    repl_src_port_high: int = 0
    repl_dst_port_high: int = 0

    def _write(self, buf: AlignedBuffer, fam: int) -> None:
        super()._write(buf, fam)
        buf.put_uint16(self.orig_src_port_high)
        buf.put_uint16(self.orig_dst_port_high)
        buf.put_uint16(self.repl_src_port_high)
        buf.put_uint16(self.repl_dst_port_high)

    @classmethod
    def _read(cls, buf: AlignedBuffer, fam: int) -> dict:
        fields = super()._read(buf, fam)
        for name in (
            "orig_src_port_high", "orig_dst_port_high",
            "repl_src_port_high", "repl_dst_port_high",
        ):
            fields[name] = buf.uint16()
        return fields

    def marshal(self, fam: int, rev: int) -> bytes:
        return super().marshal(fam, rev)

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "ConntrackMtinfo3":
        return super().unmarshal(fam, rev, data)


class TcpInvFlagset(enum.IntFlag):
    """Inversion flags of the tcp match."""

    SRC_PORTS = 1 << 0
    DEST_PORTS = 1 << 1
    FLAGS = 1 << 2
    OPTION = 1 << 3
    MASK = (1 << 4) - 1


def _ports(ports) -> tuple[int, int]:
    pair = tuple(ports)
    if len(pair) != 2:
        raise ValueError(f"a port range needs exactly two ports, got {len(pair)}")
    return pair


@dataclass
class Tcp:
    """Info of the tcp match: port ranges given as (min, max)."""

    src_ports: tuple[int, int] = (0, 0)
    dst_ports: tuple[int, int] = (0, 0)
    option: int = 0
    flags_mask: int = 0
    flags_cmp: int = 0
    inv_flags: TcpInvFlagset = TcpInvFlagset(0)

    def marshal(self, fam: int, rev: int) -> bytes:
        buf = AlignedBuffer()
        for port in (*_ports(self.src_ports), *_ports(self.dst_ports)):
            buf.put_uint16(port)
        buf.put_uint8(self.option)
        buf.put_uint8(self.flags_mask)
        buf.put_uint8(self.flags_cmp)
        buf.put_uint8(int(self.inv_flags))
        return buf.data()

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "Tcp":
        buf = AlignedBuffer(data)
        src_ports = (buf.uint16(), buf.uint16())
        dst_ports = (buf.uint16(), buf.uint16())
        return cls(
            src_ports=src_ports,
            dst_ports=dst_ports,
            option=buf.uint8(),
            flags_mask=buf.uint8(),
            flags_cmp=buf.uint8(),
            inv_flags=TcpInvFlagset(buf.uint8()),
        )


class UdpInvFlagset(enum.IntFlag):
    """Inversion flags of the udp match."""

    SRC_PORTS = 1 << 0
    DEST_PORTS = 1 << 1
    MASK = (1 << 2) - 1


@dataclass
class Udp:
    """Info of the udp match: port ranges given as (min, max)."""

    src_ports: tuple[int, int] = (0, 0)
    dst_ports: tuple[int, int] = (0, 0)
    inv_flags: UdpInvFlagset = UdpInvFlagset(0)

    def marshal(self, fam: int, rev: int) -> bytes:
        buf = AlignedBuffer()
        for port in (*_ports(self.src_ports), *_ports(self.dst_ports)):
            buf.put_uint16(port)
        buf.put_uint8(int(self.inv_flags))
        return buf.data()

    @classmethod
    def unmarshal(cls, fam: int, rev: int, data: bytes) -> "Udp":
        buf = AlignedBuffer(data)
        src_ports = (buf.uint16(), buf.uint16())
        dst_ports = (buf.uint16(), buf.uint16())
        return cls(
            src_ports=src_ports,
            dst_ports=dst_ports,
            inv_flags=UdpInvFlagset(buf.uint8()),
        )