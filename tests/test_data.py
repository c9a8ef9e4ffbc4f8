import io

import pytest

from dtcheck.data import Data, Marker, MarkerType


@pytest.mark.parametrize("bits", [8, 16, 32, 64])
def test_append_integer_round_trip(bits):
    value = 0x0123456789ABCDEF & ((1 << bits) - 1)
    d = Data().append_integer(value, bits)
    assert len(d) == bits // 8
    assert int.from_bytes(bytes(d), "big") == value


def test_append_integer_truncates():
    d = Data().append_integer(0x1FF, 8)
    assert bytes(d) == b"\xff"


@pytest.mark.parametrize("bits", [0, 7, 24, 128])
def test_append_integer_invalid_size(bits):
    with pytest.raises(ValueError):
        Data().append_integer(1, bits)


def test_append_cell_addr_byte():
    d = Data().append_cell(0xDEADBEEF).append_addr(0xDEADBEEF01ABCDEF).append_byte(7)
    raw = bytes(d)
    assert len(raw) == 13
    assert int.from_bytes(raw[:4], "big") == 0xDEADBEEF
    assert int.from_bytes(raw[4:12], "big") == 0xDEADBEEF01ABCDEF
    assert raw[12] == 7


def test_append_re():
    d = Data().append_re(0xDEADBEEF00000000, 0x100000)
    raw = bytes(d)
    assert len(raw) == 16
    assert int.from_bytes(raw[:8], "big") == 0xDEADBEEF00000000
    assert int.from_bytes(raw[8:], "big") == 0x100000


@pytest.mark.parametrize("start,align", [(0, 4), (1, 4), (5, 8), (8, 8), (3, 1)])
def test_append_align(start, align):
    d = Data.from_bytes(b"\x01" * start).append_align(align)
    assert len(d) % align == 0
    assert len(d) - start < align
    assert bytes(d)[start:] == bytes(len(d) - start)


def test_append_zeroes():
    d = Data.from_bytes(b"ab").append_zeroes(3)
    assert bytes(d) == b"ab\x00\x00\x00"


@pytest.mark.parametrize(
    "raw,expected",
    [
        (b"hello world\0", True),
        (b"\0", True),
        (b"", False),
        (b"abc", False),
        (b"a\0b\0", False),
        (b"a\0\0", False),
    ],
)
def test_is_one_string(raw, expected):
    assert Data.from_bytes(raw).is_one_string() is expected


def test_add_marker_records_offset():
    d = Data().add_marker(MarkerType.TYPE_STRING).append(b"abc\0")
    d.add_marker(MarkerType.REF_PHANDLE, "lbl")
    assert [m.offset for m in d.markers] == [0, 4]
    assert d.markers[1].ref == "lbl"


def test_markers_of_type_filters():
    d = Data()
    d.add_marker(MarkerType.LABEL, "a").append_cell(1)
    d.add_marker(MarkerType.REF_PHANDLE, "b").append_cell(2)
    d.add_marker(MarkerType.LABEL, "c")
    assert [m.ref for m in d.markers_of_type(MarkerType.LABEL)] == ["a", "c"]


def test_insert_at_marker_shifts_later_markers():
    d = Data().append(b"ab")
    d.add_marker(MarkerType.REF_PATH, "x")
    d.append(b"cd")
    d.add_marker(MarkerType.LABEL, "y")
    first, second = d.markers
    d.insert_at_marker(first, b"/node\0")
    assert bytes(d) == b"ab/node\0cd"
    assert first.offset == 2
    assert second.offset == 4 + len(b"/node\0")


def test_insert_at_foreign_marker_raises():
    d = Data().append(b"ab")
    with pytest.raises(ValueError):
        d.insert_at_marker(Marker(MarkerType.LABEL, 0), b"x")


def test_merge_adjusts_offsets():
    a = Data().add_marker(MarkerType.TYPE_UINT32).append_cell(1)
    b = Data().add_marker(MarkerType.TYPE_STRING).append(b"hi\0")
    a.merge(b)
    assert bytes(a)[4:] == b"hi\0"
    assert [(m.type, m.offset) for m in a.markers] == [
        (MarkerType.TYPE_UINT32, 0),
        (MarkerType.TYPE_STRING, 4),
    ]


def test_from_file_reads_all():
    payload = bytes(range(256)) * 40
    d = Data.from_file(io.BytesIO(payload), -1)
    assert bytes(d) == payload
    assert d.markers[0].type is MarkerType.TYPE_NONE
    assert d.markers[0].offset == 0


def test_from_file_respects_maxlen():
    d = Data.from_file(io.BytesIO(b"abcdefgh"), 3)
    assert bytes(d) == b"abc"


def test_from_bytes_copies():
    src = bytearray(b"xyz")
    d = Data.from_bytes(src)
    src[0] = 0
    assert bytes(d) == b"xyz"
    assert d.markers == []