from nftkit.dump import Recorder, diff, linediff, nfdump
from nftkit.netlink import NLM_F_ACK, NLM_F_REQUEST, NLMSG_ERROR, NLMSG_HDRLEN, Message
from nftkit.table import Table, TableFamily, add_table, del_table


def test_nfdump_full_words():
    assert nfdump(bytes([0xDE, 0xAD, 0xBE, 0xEF])) == "de ad be ef\n"


def test_nfdump_leftover_bytes():
    assert nfdump(bytes([1, 2, 3, 4, 5])) == "01 02 03 04\n05 "


def test_nfdump_line_count_matches_words():
    dump = nfdump(bytes(32))
    assert dump.count("\n") == 32 // 4


def test_linediff_flags_differences():
    result = linediff("x\ny", "x\nz")
    assert result.splitlines() == ["got -- want", "  x -- x", "! y -- z"]


def test_linediff_stops_at_shorter_side():
    result = linediff("a\nb\nc", "a")
    assert result.count("\n") == 2
    assert result.startswith("got -- want\n")


def test_diff_equal_is_empty():
    msgs = [add_table(Table(name="filter", family=TableFamily.IPV4))]
    want = [m.to_bytes()[NLMSG_HDRLEN:] for m in msgs]
    assert diff(msgs, want) == ""


def test_diff_missing_want_entry():
    msgs = [add_table(Table(name="filter"))]
    result = diff(msgs, [])
    assert result.startswith("no want entry for message 0: ")
    assert result.endswith(msgs[0].to_bytes()[NLMSG_HDRLEN:].hex())


def test_diff_reports_first_mismatch():
    first = add_table(Table(name="filter"))
    second = del_table(Table(name="filter"))
    want = [first.to_bytes()[NLMSG_HDRLEN:], add_table(Table(name="other")).to_bytes()[NLMSG_HDRLEN:]]
    result = diff([first, second], want)
    assert result.startswith("message 1: got -- want\n")
    assert "! " in result


def test_recorder_acks_only_acknowledged_requests():
    recorder = Recorder()
    acked = Message(type=5, flags=NLM_F_REQUEST | NLM_F_ACK, sequence=3, pid=11)
    silent = Message(type=6, flags=NLM_F_REQUEST, sequence=4, pid=11)
    acks = recorder.record([acked, silent])
    assert recorder.requests == [acked, silent]
    assert len(acks) == 1
    assert acks[0].type == NLMSG_ERROR
    assert acks[0].data == bytes(4)
    assert (acks[0].sequence, acks[0].pid) == (3, 11)


def test_recorder_accumulates_and_diffs():
    recorder = Recorder()
    table = Table(name="filter", family=TableFamily.INET)
    recorder.record([add_table(table)])
    recorder.record([del_table(table)])
    want = [add_table(table).to_bytes()[NLMSG_HDRLEN:], del_table(table).to_bytes()[NLMSG_HDRLEN:]]
    assert len(recorder.requests) == 2
    assert diff(recorder.requests, want) == ""