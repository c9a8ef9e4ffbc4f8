import pytest

from dtcheck.formats import (
    FDT_MAGIC,
    guess_input_format,
    guess_type_by_name,
    is_power_of_2,
)


@pytest.mark.parametrize("x,expected", [(1, True), (2, True), (64, True), (0, False), (-4, False), (3, False), (12, False)])
def test_is_power_of_2(x, expected):
    assert is_power_of_2(x) is expected


@pytest.mark.parametrize(
    "name,expected",
    [
        ("a.dts", "dts"),
        ("A.DTS", "dts"),
        ("x.yaml", "yaml"),
        ("tree.dtb", "dtb"),
        ("noext", "fb"),
        ("file.txt", "fb"),
        ("dir.dts/file", "fb"),
    ],
)
def test_guess_type_by_name(name, expected):
    assert guess_type_by_name(name, "fb") == expected


def test_guess_type_by_name_none_fallback():
    assert guess_type_by_name("out", None) is None


def test_guess_input_directory(tmp_path):
    assert guess_input_format(str(tmp_path), "dts") == "fs"


def test_guess_input_missing(tmp_path):
    assert guess_input_format(str(tmp_path / "missing.dtb"), "dts") == "dts"


def test_guess_input_magic(tmp_path):
    path = tmp_path / "blob.bin"
    path.write_bytes(FDT_MAGIC.to_bytes(4, "big") + b"\0" * 36)
    assert guess_input_format(str(path), "dts") == "dtb"


def test_guess_input_by_name(tmp_path):
    path = tmp_path / "tree.yaml"
    path.write_text("- /dts-v1/\n")
    assert guess_input_format(str(path), "dts") == "yaml"


def test_guess_input_short_file(tmp_path):
    path = tmp_path / "short.dtb"
    path.write_bytes(b"ab")
    assert guess_input_format(str(path), "dts") == "dts"