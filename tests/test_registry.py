import io

import pytest

from dtcheck.checkbase import CheckConfig
from dtcheck.data import Data
from dtcheck.registry import CheckRegistry, TreeErrors
from dtcheck.tree import DtInfo, Node, Property, fill_fullpaths


def make_dti(*children):
    root = Node("")
    for child in children:
        root.add_child(child)
    fill_fullpaths(root)
    return DtInfo(root)


def clean_dti():
    chosen = Node("chosen")
    chosen.add_property(Property("bootargs", Data.from_bytes(b"console\0")))
    return make_dti(chosen)


def test_order_of_table():
    names = [c.name for c in CheckRegistry()]
    assert names[0] == "duplicate_node_names"
    assert names[-1] == "always_fail"
    assert len(names) == len(set(names))


def test_get_and_default_levels():
    registry = CheckRegistry()
    assert registry.get("reg_format").warn is True
    assert registry.get("duplicate_node_names").error is True
    assert registry.get("always_fail").warn is False
    with pytest.raises(KeyError):
        registry.get("no_such_check")


def test_disable_propagates_to_dependents():
    registry = CheckRegistry()
    registry.parse_option(True, False, "no-reg_format")
    assert registry.get("reg_format").warn is False
    assert registry.get("pci_device_bus_num").warn is False
    assert registry.get("simple_bus_reg").warn is False
    assert registry.get("addr_size_cells").warn is True


def test_enable_propagates_to_prerequisites():
    registry = CheckRegistry()
    registry.parse_option(False, True, "unit_address_format")
    for name in ("unit_address_format", "node_name_format", "pci_bridge",
                 "simple_bus_bridge", "addr_size_cells"):
        assert registry.get(name).error is True
    assert registry.get("reg_format").error is False


def test_no_underscore_prefix():
    registry = CheckRegistry()
    registry.parse_option(True, False, "no_unit_address_vs_reg")
    assert registry.get("unit_address_vs_reg").warn is False


def test_unknown_option():
    with pytest.raises(ValueError, match="Unrecognized check name"):
        CheckRegistry().parse_option(True, False, "no-bogus")


def test_clean_tree():
    config = CheckConfig(stream=io.StringIO())
    assert CheckRegistry().process(clean_dti(), config=config) is False
    assert config.stream.getvalue() == ""


def test_warnings_do_not_make_errors():
    config = CheckConfig(stream=io.StringIO())
    result = CheckRegistry().process(make_dti(Node("foo@1")), config=config)
    assert result is False
    assert "node has a unit name, but no reg property" in config.stream.getvalue()


def test_errors_abort():
    config = CheckConfig(stream=io.StringIO())
    with pytest.raises(TreeErrors):
        CheckRegistry().process(make_dti(Node("a"), Node("a")), config=config)
    assert "Duplicate node name" in config.stream.getvalue()


def test_errors_forced():
    config = CheckConfig(stream=io.StringIO())
    result = CheckRegistry().process(make_dti(Node("a"), Node("a")), True, config)
    assert result is True
    assert "Warning: Input tree has errors, output forced" in config.stream.getvalue()


def test_forced_message_suppressed_when_very_quiet():
    config = CheckConfig(quiet=3, stream=io.StringIO())
    result = CheckRegistry().process(make_dti(Node("a"), Node("a")), True, config)
    assert result is True
    assert config.stream.getvalue() == ""


def test_always_fail_enabled_as_error():
    registry = CheckRegistry()
    registry.parse_option(False, True, "always_fail")
    config = CheckConfig(stream=io.StringIO())
    with pytest.raises(TreeErrors):
        registry.process(clean_dti(), config=config)
    assert "ERROR (always_fail): /: always_fail check" in config.stream.getvalue()