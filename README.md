# nftkit

nftkit builds and parses the netlink messages that the Linux nftables
subsystem understands. It works in memory only. Request builders return
`Message` objects, and decoders turn `Message` objects back into tables,
rules, sets and set elements. No socket is opened, so you can inspect,
record or compare a ruleset change before you send it anywhere.

## Installation

```
pip install nftkit
```

To run the tests:

```
pip install "nftkit[test]"
pytest
```

## Modules

### `nftkit.netlink`

Netlink framing:

- `Attribute` is a TLV attribute. It has the constructors `from_str`,
  `from_uint32` and `from_uint64`, and the accessors `as_str`, `as_uint32`
  and `as_uint64`. `kind` gives the type without the flag bits.
- `Message` holds a message's type, flags, sequence, pid and payload.
  `to_bytes()` encodes it with its 16-byte header.
- `parse_message` decodes a message. `marshal_attributes` and
  `parse_attributes` encode and decode runs of attributes.
- `extra_header(family, res_id)` builds the 4-byte nfnetlink header.

Malformed input raises `NetlinkError`, which is a subclass of `ValueError`.

### `nftkit.table`

`Table` and `TableFamily`. `add_table`, `del_table` and `flush_table` build
requests. `list_tables_request(family)` builds a dump request.
`table_from_message` decodes a NEWTABLE reply.

### `nftkit.rule`

`Rule` and `RuleOperation`. A rule names its chain by a string and carries
its expressions as already encoded payloads (`list[bytes]`).

- `add_rule` appends the rule and `insert_rule` inserts it. Both switch to a
  replace request when the rule already has a handle.
- `replace_rule` and `new_rule(rule, op)` build a request for an explicit
  operation.
- `del_rule` builds a delete request. It raises `ValueError` if the handle
  is 0.
- `get_rules_request` builds a dump request and `rule_from_message` decodes
  a reply.

### `nftkit.datatypes`

`SetDatatype` is a frozen dataclass with the fields `name`, `size` and
`nft_magic`. The module also provides:

- the known types as `TYPE_*` constants, and the mapping `NFT_DATATYPES`
  from name to type;
- `concat_set_type(*types)`, which builds a concatenated type. It raises
  `TooManyTypesError` for more than five types;
- `concat_set_type_elements`, which splits a concatenated type back into its
  members;
- `validate_key_type`, which returns the unknown packed magics and whether
  all of them were known;
- `datatype_by_magic`.

### `nftkit.sets`

`Set`, `SetElement` and `VerdictData`. Timeouts are `datetime.timedelta`
values.

- `add_set(nft_set, elements)` returns a list of messages: the NEWSET
  request, plus a NEWSETELEM request when elements are given. A set with
  `id == 0` is given a fresh id. Anonymous sets must be constant.
- `set_add_elements`, `set_delete_elements`, `del_set` and `flush_set` build
  the other requests. The element helpers refuse anonymous sets.
- `make_element_list` returns the raw element attributes.
- `get_sets_request`, `get_set_by_name_request` and
  `get_set_elements_request` build queries.
- `set_from_message` and `elements_from_message` decode replies.

### `nftkit.dump`

`Recorder.record(messages)` stores messages in `Recorder.requests`. It
returns a success ack for each message that asks for one.

`nfdump` renders bytes as a hex dump with four bytes per line. `linediff`
puts two dumps side by side. `diff(got, want)` compares each message's
payload, after the 16-byte header, with the expected bytes. It returns `""`
when they match, or a description of the first difference.

### `nftkit.xt`

The binary info payloads of xtables match and target expressions.

- `nftkit.xt.matches`: `AddrType`, `AddrTypeV1`, `ConntrackMtinfo1`,
  `ConntrackMtinfo2`, `ConntrackMtinfo3`, `Tcp` and `Udp`, with their flag
  enums.
- `nftkit.xt.targets`: `NatRange`, `NatRange2`, `NatIPv4Range`,
  `NatIPv4MultiRangeCompat` and `Unknown`.
- `nftkit.xt.aligned`: `AlignedBuffer`, which writes and reads values with
  C alignment, and `put_ipv46` and `get_ipv46` for 16-byte address slots.
- `nftkit.xt.info`: `marshal(fam, rev, info)`, and
  `unmarshal(name, fam, rev, data)`. The latter picks the type from the
  extension name, the table family and the revision, and falls back to
  `Unknown`.

Each info class has `marshal(fam, rev)` and a classmethod
`unmarshal(fam, rev, data)`. Payloads are padded with zeros to an 8-byte
boundary, except for `Unknown`, which is sent exactly as given. Integers are
in host byte order, and C `unsigned int` fields are 32 bits. NAT ports are
the exception: they are big-endian.

## Example

```python
from nftkit.table import Table, TableFamily, add_table
from nftkit.dump import Recorder, nfdump

table = Table(name="filter", family=TableFamily.IPV4)
recorder = Recorder()
recorder.record([add_table(table)])

for message in recorder.requests:
    print(nfdump(message.to_bytes()))
```

Info payloads round-trip through `marshal` and `unmarshal`:

```python
from nftkit.table import TableFamily
from nftkit.xt.matches import Tcp
from nftkit.xt import info

payload = info.marshal(TableFamily.IPV4, 0, Tcp(src_ports=(1024, 2048)))
decoded = info.unmarshal("tcp", TableFamily.IPV4, 0, payload)
assert decoded == Tcp(src_ports=(1024, 2048))
```

## What nftkit does not do

- It does not open netlink sockets, send batches to the kernel or read
  replies. Sending the messages and collecting the answers is up to you.
- It has no builders for chains or stateful objects.
- It does not encode or decode individual rule expressions. Rules carry them
  as opaque byte payloads.