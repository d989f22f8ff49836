"""Netlink message and attribute framing used by nftables requests."""

from __future__ import annotations

import struct
from dataclasses import dataclass

NLMSG_HDRLEN = 16
NLA_HDRLEN = 4

NLA_F_NESTED = 0x8000
NLA_F_NET_BYTEORDER = 0x4000
NLA_TYPE_MASK = ~(NLA_F_NESTED | NLA_F_NET_BYTEORDER) & 0xFFFF

NLM_F_REQUEST = 0x1
NLM_F_MULTI = 0x2
NLM_F_ACK = 0x4
NLM_F_ECHO = 0x8
NLM_F_ROOT = 0x100
NLM_F_MATCH = 0x200
NLM_F_DUMP = NLM_F_ROOT | NLM_F_MATCH
NLM_F_REPLACE = 0x100
NLM_F_EXCL = 0x200
NLM_F_CREATE = 0x400
NLM_F_APPEND = 0x800

NLMSG_ERROR = 0x2

NFNETLINK_V0 = 0
NFNL_SUBSYS_NFTABLES = 10
NFT_SUBSYS_BASE = NFNL_SUBSYS_NFTABLES << 8

NFT_MSG_NEWTABLE = 0
NFT_MSG_GETTABLE = 1
NFT_MSG_DELTABLE = 2
NFT_MSG_NEWCHAIN = 3
NFT_MSG_GETCHAIN = 4
NFT_MSG_DELCHAIN = 5
NFT_MSG_NEWRULE = 6
NFT_MSG_GETRULE = 7
NFT_MSG_DELRULE = 8
NFT_MSG_NEWSET = 9
NFT_MSG_GETSET = 10
NFT_MSG_DELSET = 11
NFT_MSG_NEWSETELEM = 12
NFT_MSG_GETSETELEM = 13
NFT_MSG_DELSETELEM = 14
NFT_MSG_NEWGEN = 15
NFT_MSG_GETGEN = 16
NFT_MSG_TRACE = 17
NFT_MSG_NEWOBJ = 18
NFT_MSG_GETOBJ = 19
NFT_MSG_DELOBJ = 20
NFT_MSG_GETOBJ_RESET = 21

_NLMSG_HEADER = struct.Struct("=IHHII")
_NLA_HEADER = struct.Struct("=HH")


class NetlinkError(ValueError):
    """Raised when a netlink message or attribute cannot be encoded or decoded."""


def _align4(length: int) -> int:
    return (length + 3) & ~3


def _padding(length: int) -> bytes:
    return bytes(_align4(length) - length)


@dataclass
class Attribute:
    """A netlink TLV attribute; ``type`` may carry the nested/byte-order flags."""

    type: int
    data: bytes = b""

    @property
    def kind(self) -> int:
        """The attribute type without flag bits."""
        return self.type & NLA_TYPE_MASK

    @property
    def nested(self) -> bool:
        return bool(self.type & NLA_F_NESTED)

    @classmethod
    def from_str(cls, attr_type: int, value: str) -> "Attribute":
        """Build a NUL-terminated string attribute."""
        return cls(attr_type, value.encode("utf-8", "surrogateescape") + b"\x00")

    @classmethod
    def from_uint32(cls, attr_type: int, value: int) -> "Attribute":
        """Build a big-endian 32-bit attribute."""
        return cls(attr_type, value.to_bytes(4, "big"))

    @classmethod
    def from_uint64(cls, attr_type: int, value: int) -> "Attribute":
        """Build a big-endian 64-bit attribute."""
        return cls(attr_type, value.to_bytes(8, "big"))

    def as_str(self) -> str:
        """Decode the payload as a string, dropping one trailing NUL."""
        raw = self.data[:-1] if self.data.endswith(b"\x00") else self.data
        return raw.decode("utf-8", "surrogateescape")

    def _as_uint(self, size: int) -> int:
        if len(self.data) != size:
            raise NetlinkError(
                f"attribute {self.kind}: expected {size} bytes, got {len(self.data)}"
            )
        return int.from_bytes(self.data, "big")

    def as_uint32(self) -> int:
        """Decode the payload as a big-endian 32-bit integer."""
        return self._as_uint(4)

    def as_uint64(self) -> int:
        """Decode the payload as a big-endian 64-bit integer."""
        return self._as_uint(8)


@dataclass
class Message:
    """A netlink message: header fields plus payload."""

    type: int
    flags: int = 0
    data: bytes = b""
    sequence: int = 0
    pid: int = 0

    def to_bytes(self) -> bytes:
        """Encode the message with its 16-byte header, padded to 4 bytes."""
        length = NLMSG_HDRLEN + len(self.data)
        header = _NLMSG_HEADER.pack(length, self.type, self.flags, self.sequence, self.pid)
        return header + bytes(self.data) + _padding(length)


def parse_message(data: bytes) -> Message:
    """Decode one netlink message from its wire form."""
    if len(data) < NLMSG_HDRLEN:
        raise NetlinkError("netlink message too short for header")
    length, msg_type, flags, sequence, pid = _NLMSG_HEADER.unpack_from(data)
    if length < NLMSG_HDRLEN or length > len(data):
        raise NetlinkError(f"invalid netlink message length {length}")
    return Message(
        type=msg_type,
        flags=flags,
        data=bytes(data[NLMSG_HDRLEN:length]),
        sequence=sequence,
        pid=pid,
    )


def marshal_attributes(attrs) -> bytes:
    """Encode attributes back to back, each padded to 4 bytes."""
    chunks = []
    for attr in attrs:
        length = NLA_HDRLEN + len(attr.data)
        if length > 0xFFFF:
            raise NetlinkError(f"attribute {attr.kind} too large: {length} bytes")
        chunks.append(_NLA_HEADER.pack(length, attr.type))
        chunks.append(bytes(attr.data))
        chunks.append(_padding(length))
    return b"".join(chunks)


def parse_attributes(data: bytes) -> list[Attribute]:
    """Decode a run of attributes, keeping their raw types."""
    view = bytes(data)
    attrs = []
    offset = 0
    while offset < len(view):
        if len(view) - offset < NLA_HDRLEN:
            raise NetlinkError("attribute header truncated")
        length, attr_type = _NLA_HEADER.unpack_from(view, offset)
        if length < NLA_HDRLEN or offset + length > len(view):
            raise NetlinkError(f"invalid attribute length {length}")
        attrs.append(Attribute(attr_type, view[offset + NLA_HDRLEN:offset + length]))
        offset += _align4(length)
    return attrs


def extra_header(family: int, res_id: int) -> bytes:
    """The nfnetlink header: family, version and big-endian resource id."""
    return bytes([int(family), NFNETLINK_V0]) + int(res_id).to_bytes(2, "big")