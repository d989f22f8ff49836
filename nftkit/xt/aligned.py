"""Aligned binary buffers for xtables match and target info payloads.

Info payloads are not netlink TLVs. They are plain images of the kernel's C
structures, so host alignment and native byte order apply. C's
``unsigned int`` is treated as 32 bits. A finished payload is padded with
zeros to the next 8-byte boundary, which the kernel requires.
"""

from __future__ import annotations

import ipaddress
import struct

from nftkit.table import TableFamily

_UINT8 = struct.Struct("=B")
_UINT16 = struct.Struct("=H")
_UINT16_BE = struct.Struct(">H")
_UINT32 = struct.Struct("=I")

_UINT16_ALIGN = 2
_UINT32_ALIGN = 4
_UINT64_ALIGN = 8

_IPV46_SIZE = 16


class AlignedBuffer:
    """A write-then-read buffer that aligns each value as a C compiler would."""

    def __init__(self, data: bytes = b"") -> None:
        self._data = bytearray(data)
        self._pos = 0

    def _align_write(self, alignment: int) -> None:
        self._data += bytes(-len(self._data) % alignment)

    def _put(self, packer: struct.Struct, alignment: int, value: int) -> None:
        try:
            packed = packer.pack(int(value))
        except struct.error as exc:
            raise ValueError(f"value {value!r} does not fit: {exc}") from None
        self._align_write(alignment)
        self._data += packed

    def _take(self, alignment: int, size: int) -> bytes:
        start = self._pos + (-self._pos % alignment)
        end = start + size
        if end > len(self._data):
            raise ValueError("unexpected end of buffer")
        self._pos = end
        return bytes(self._data[start:end])

    def _get(self, unpacker: struct.Struct, alignment: int) -> int:
        return unpacker.unpack(self._take(alignment, unpacker.size))[0]

    def put_uint8(self, value: int) -> None:
        self._put(_UINT8, 1, value)

    def put_uint16(self, value: int) -> None:
        self._put(_UINT16, _UINT16_ALIGN, value)

    def put_uint16_be(self, value: int) -> None:
        """Write a 16-bit value in network byte order, 2-byte aligned."""
        self._put(_UINT16_BE, _UINT16_ALIGN, value)

    def put_uint32(self, value: int) -> None:
        self._put(_UINT32, _UINT32_ALIGN, value)

    def put_uint(self, value: int) -> None:
        """Write a C ``unsigned int`` (32 bits)."""
        self._put(_UINT32, _UINT32_ALIGN, value)

    def put_bool32(self, value: bool) -> None:
        """Write a boolean as a 32-bit 0 or 1."""
        self.put_uint32(1 if value else 0)

    def put_bytes_aligned32(self, data: bytes, size: int) -> None:
        """Write ``data`` 4-byte aligned, zero-padded up to ``size`` bytes."""
        self._align_write(_UINT32_ALIGN)
        payload = bytes(data or b"")
        self._data += payload
        if len(payload) < size:
            self._data += bytes(size - len(payload))

    def uint8(self) -> int:
        return self._get(_UINT8, 1)

    def uint16(self) -> int:
        return self._get(_UINT16, _UINT16_ALIGN)

    def uint16_be(self) -> int:
        return self._get(_UINT16_BE, _UINT16_ALIGN)

    def uint32(self) -> int:
        return self._get(_UINT32, _UINT32_ALIGN)

    def uint(self) -> int:
        """Read a C ``unsigned int`` (32 bits)."""
        return self._get(_UINT32, _UINT32_ALIGN)

    def bool32(self) -> bool:
        return self.uint32() != 0

    def bytes_aligned32(self, size: int) -> bytes:
        """Read ``size`` bytes starting at the next 4-byte boundary."""
        return self._take(_UINT32_ALIGN, size)

    def data(self) -> bytes:
        """The written bytes, zero-padded to a multiple of 8."""
        raw = bytes(self._data)
        return raw + bytes(-len(raw) % _UINT64_ALIGN)


def _ip_object(ip):
    if ip is None:
        return None
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip
    return ipaddress.ip_address(bytes(ip) if isinstance(ip, (bytes, bytearray)) else ip)


def _to4(ip) -> bytes:
    addr = _ip_object(ip)
    if addr is None:
        return b""
    if isinstance(addr, ipaddress.IPv4Address):
        return addr.packed
    mapped = addr.ipv4_mapped
    return mapped.packed if mapped is not None else b""


def _to16(ip) -> bytes:
    addr = _ip_object(ip)
    if addr is None:
        return b""
    if isinstance(addr, ipaddress.IPv4Address):
        return bytes(10) + b"\xff\xff" + addr.packed
    return addr.packed


def put_ipv46(buf: AlignedBuffer, fam: int, ip) -> None:
    """Write an address into a 16-byte slot.

    IPv4 tables store the 4-byte form, IPv6 tables the 16-byte form (IPv4
    addresses become IPv4-mapped). A missing address is written as zeros.
    """
    if fam == TableFamily.IPV4:
        buf.put_bytes_aligned32(_to4(ip), _IPV46_SIZE)
    elif fam == TableFamily.IPV6:
        buf.put_bytes_aligned32(_to16(ip), _IPV46_SIZE)
    else:
        raise ValueError(f"marshal IP: unsupported table family {int(fam)}")


def get_ipv46(buf: AlignedBuffer, fam: int):
    """Read an address from a 16-byte slot according to the table family."""
    raw = buf.bytes_aligned32(_IPV46_SIZE)
    if fam == TableFamily.IPV4:
        return ipaddress.IPv4Address(raw[:4])
    if fam == TableFamily.IPV6:
        return ipaddress.IPv6Address(raw)
    raise ValueError(f"unmarshal IP: unsupported table family {int(fam)}")