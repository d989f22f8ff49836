"""Recording of netlink requests and readable diffs of their payloads."""

from __future__ import annotations

import struct

from nftkit.netlink import NLM_F_ACK, NLMSG_ERROR, NLMSG_HDRLEN, Message


class Recorder:
    """Collects requests instead of sending them and answers with acks."""

    def __init__(self) -> None:
        self.requests: list[Message] = []

    def record(self, messages) -> list[Message]:
        """Store ``messages`` and return a success ack for each that asks for one."""
        batch = list(messages)
        self.requests.extend(batch)
        return [
            Message(type=NLMSG_ERROR, data=bytes(4), sequence=msg.sequence, pid=msg.pid)
            for msg in batch
            if msg.flags & NLM_F_ACK
        ]


def nfdump(data: bytes) -> str:
    """Hex dump with four bytes per line; leftover bytes trail the last line."""
    data = bytes(data)
    whole = len(data) - len(data) % 4
    lines = "".join(
        "{:02x} {:02x} {:02x} {:02x}\n".format(*group)
        for group in struct.iter_unpack("4B", data[:whole])
    )
    tail = "".join(f"{byte:02x} " for byte in data[whole:])
    return lines + tail


def linediff(a: str, b: str) -> str:
    """Side-by-side comparison of two dumps; differing lines start with '!'."""
    lines = ["got -- want"]
    for line_a, line_b in zip(a.split("\n"), b.split("\n")):
        prefix = "  " if line_a == line_b else "! "
        lines.append(f"{prefix}{line_a} -- {line_b}")
    return "\n".join(lines) + "\n"


def diff(got, want) -> str:
    """Describe the first payload in ``got`` that differs from ``want``, or ''."""
    expected = iter(want)
    for idx, msg in enumerate(got):
        payload = msg.to_bytes()[NLMSG_HDRLEN:]
        wanted = next(expected, None)
        if wanted is None:
            return f"no want entry for message {idx}: {payload.hex()}"
        wanted = bytes(wanted)
        if payload != wanted:
            return f"message {idx}: {linediff(nfdump(payload), nfdump(wanted))}"
    return ""