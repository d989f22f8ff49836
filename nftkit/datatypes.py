"""Set key and data types known to nft, and concatenation of them."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

SET_CONCAT_TYPE_BITS = 6
SET_CONCAT_TYPE_MASK = (1 << SET_CONCAT_TYPE_BITS) - 1

_CONCAT_SEPARATOR = " . "

# Sizes taken from the kernel and nft headers.
CT_LABEL_BIT_SIZE = 128
IF_NAME_SIZE = 16
SIZE_OF_UID_T = 4
SIZE_OF_GID_T = 4


class TooManyTypesError(ValueError):
    """Raised when a concatenation would overflow the 32-bit type magic."""


@dataclass(frozen=True)
class SetDatatype:
    """A datatype declared by nft.

    ``nft_magic`` is the value nft stores as the set key type, so that
    listings produced by nft show the right type.
    """

    name: str = ""
    size: int = 0
    nft_magic: int = 0


TYPE_INVALID = SetDatatype("invalid", 0, 0)
TYPE_VERDICT = SetDatatype("verdict", 0, 1)
TYPE_NF_PROTO = SetDatatype("nf_proto", 1, 2)
TYPE_BITMASK = SetDatatype("bitmask", 0, 3)
TYPE_INTEGER = SetDatatype("integer", 4, 4)
TYPE_STRING = SetDatatype("string", 0, 5)
TYPE_LL_ADDR = SetDatatype("ll_addr", 0, 6)
TYPE_IP_ADDR = SetDatatype("ipv4_addr", 4, 7)
TYPE_IP6_ADDR = SetDatatype("ipv6_addr", 16, 8)
TYPE_ETHER_ADDR = SetDatatype("ether_addr", 6, 9)
TYPE_ETHER_TYPE = SetDatatype("ether_type", 2, 10)
TYPE_ARP_OP = SetDatatype("arp_op", 2, 11)
TYPE_INET_PROTO = SetDatatype("inet_proto", 1, 12)
TYPE_INET_SERVICE = SetDatatype("inet_service", 2, 13)
TYPE_ICMP_TYPE = SetDatatype("icmp_type", 1, 14)
TYPE_TCP_FLAG = SetDatatype("tcp_flag", 1, 15)
TYPE_DCCP_PKT_TYPE = SetDatatype("dccp_pkttype", 1, 16)
TYPE_MH_TYPE = SetDatatype("mh_type", 1, 17)
TYPE_TIME = SetDatatype("time", 8, 18)
TYPE_MARK = SetDatatype("mark", 4, 19)
TYPE_IF_INDEX = SetDatatype("iface_index", 4, 20)
TYPE_ARPHRD = SetDatatype("iface_type", 2, 21)
TYPE_REALM = SetDatatype("realm", 4, 22)
TYPE_CLASS_ID = SetDatatype("classid", 4, 23)
TYPE_UID = SetDatatype("uid", SIZE_OF_UID_T, 24)
TYPE_GID = SetDatatype("gid", SIZE_OF_GID_T, 25)
TYPE_CT_STATE = SetDatatype("ct_state", 4, 26)
TYPE_CT_DIR = SetDatatype("ct_dir", 1, 27)
TYPE_CT_STATUS = SetDatatype("ct_status", 4, 28)
TYPE_ICMP6_TYPE = SetDatatype("icmpv6_type", 1, 29)
TYPE_CT_LABEL = SetDatatype("ct_label", CT_LABEL_BIT_SIZE // 8, 30)
TYPE_PKT_TYPE = SetDatatype("pkt_type", 1, 31)
TYPE_ICMP_CODE = SetDatatype("icmp_code", 1, 32)
TYPE_ICMPV6_CODE = SetDatatype("icmpv6_code", 1, 33)
TYPE_ICMPX_CODE = SetDatatype("icmpx_code", 1, 34)
TYPE_DEV_GROUP = SetDatatype("devgroup", 4, 35)
TYPE_DSCP = SetDatatype("dscp", 1, 36)
TYPE_ECN = SetDatatype("ecn", 1, 37)
TYPE_FIB_ADDR = SetDatatype("fib_addrtype", 4, 38)
TYPE_BOOLEAN = SetDatatype("boolean", 1, 39)
TYPE_CT_EVENT_BIT = SetDatatype("ct_event", 4, 40)
TYPE_IF_NAME = SetDatatype("ifname", IF_NAME_SIZE, 41)
TYPE_IGMP_TYPE = SetDatatype("igmp_type", 1, 42)
TYPE_TIME_DATE = SetDatatype("time", 8, 43)
TYPE_TIME_HOUR = SetDatatype("hour", 8, 44)
TYPE_TIME_DAY = SetDatatype("day", 1, 45)
TYPE_CGROUP_V2 = SetDatatype("cgroupsv2", 8, 46)

_ALL_TYPES = (
    TYPE_VERDICT, TYPE_NF_PROTO, TYPE_BITMASK, TYPE_INTEGER, TYPE_STRING,
    TYPE_LL_ADDR, TYPE_IP_ADDR, TYPE_IP6_ADDR, TYPE_ETHER_ADDR, TYPE_ETHER_TYPE,
    TYPE_ARP_OP, TYPE_INET_PROTO, TYPE_INET_SERVICE, TYPE_ICMP_TYPE,
    TYPE_TCP_FLAG, TYPE_DCCP_PKT_TYPE, TYPE_MH_TYPE, TYPE_TIME, TYPE_MARK,
    TYPE_IF_INDEX, TYPE_ARPHRD, TYPE_REALM, TYPE_CLASS_ID, TYPE_UID, TYPE_GID,
    TYPE_CT_STATE, TYPE_CT_DIR, TYPE_CT_STATUS, TYPE_ICMP6_TYPE, TYPE_CT_LABEL,
    TYPE_PKT_TYPE, TYPE_ICMP_CODE, TYPE_ICMPV6_CODE, TYPE_ICMPX_CODE,
    TYPE_DEV_GROUP, TYPE_DSCP, TYPE_ECN, TYPE_FIB_ADDR, TYPE_BOOLEAN,
    TYPE_CT_EVENT_BIT, TYPE_IF_NAME, TYPE_IGMP_TYPE, TYPE_TIME_DATE,
    TYPE_TIME_HOUR, TYPE_TIME_DAY, TYPE_CGROUP_V2,
)

# Keyed by name; where two types share a name the later one wins.
NFT_DATATYPES = MappingProxyType({dt.name: dt for dt in _ALL_TYPES})

_KNOWN_MAGICS = frozenset(dt.nft_magic for dt in NFT_DATATYPES.values())


def concat_set_type(*types: SetDatatype) -> SetDatatype:
    """Build the datatype for a concatenation of ``types``.

    Raises TooManyTypesError when the packed magic would overflow
    (more than five types).
    """
    if len(types) > 32 // SET_CONCAT_TYPE_BITS:
        raise TooManyTypesError("too many types to concat")
    magic = 0
    size = 0
    for datatype in types:
        # Each member is padded to the 4-byte register size.
        size += datatype.size + (-datatype.size % 4)
        magic = ((magic << SET_CONCAT_TYPE_BITS)
                 | (datatype.nft_magic & SET_CONCAT_TYPE_MASK)) & 0xFFFFFFFF
    name = _CONCAT_SEPARATOR.join(datatype.name for datatype in types)
    return SetDatatype(name=name, size=size, nft_magic=magic)


def concat_set_type_elements(datatype: SetDatatype) -> list[SetDatatype]:
    """The base types a concatenated type was built from, found by name.

    Names that are not known map to an empty datatype.
    """
    return [
        NFT_DATATYPES.get(name, SetDatatype())
        for name in datatype.name.split(_CONCAT_SEPARATOR)
    ]


def validate_key_type(bits: int) -> tuple[list[int], bool]:
    """Check every packed type magic in ``bits``.

    Returns the unknown magics (lowest bits first) and whether all were known.
    """
    invalid = []
    bits &= 0xFFFFFFFF
    while bits:
        part = bits & SET_CONCAT_TYPE_MASK
        if part not in _KNOWN_MAGICS:
            invalid.append(part)
        bits >>= SET_CONCAT_TYPE_BITS
    return invalid, not invalid


def datatype_by_magic(magic: int) -> SetDatatype | None:
    """The known datatype with this magic, or None."""
    return next(
        (dt for dt in NFT_DATATYPES.values() if dt.nft_magic == magic), None
    )