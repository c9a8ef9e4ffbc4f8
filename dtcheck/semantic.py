"""Semantic checks: cell sizes, string types, bus bindings, unit addresses."""

from __future__ import annotations

import string
from dataclasses import dataclass

from dtcheck.checkbase import Check, check_is_cell, check_is_string, check_is_string_list
from dtcheck.tree import DtInfo, Node, Property, get_node_by_path

_LOWERCASE_DIGITS_DASH = string.ascii_lowercase + string.digits + "-"
_UINT64_MASK = (1 << 64) - 1
_CELL_SIZE = 4


@dataclass(frozen=True)
class BusType:
    """The kind of bus a node bridges to."""

    name: str


PCI_BUS = BusType("PCI")
SIMPLE_BUS = BusType("simple-bus")
I2C_BUS = BusType("i2c-bus")
SPI_BUS = BusType("spi-bus")


def _c_string(raw: bytes | bytearray) -> str:
    return bytes(raw).split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _cells(prop: Property) -> list[int]:
    val = bytes(prop.val.val)
    return [
        int.from_bytes(val[i:i + _CELL_SIZE], "big")
        for i in range(0, len(val) - _CELL_SIZE + 1, _CELL_SIZE)
    ]


def _basename(node: Node) -> str:
    return node.name[: node.basenamelen]


def _prefixeq(name: str, n: int, prefix: str) -> bool:
    """True if the first ``n`` characters of ``name`` are exactly ``prefix``."""
    return len(prefix) == n and name[:n] == prefix


def _node_addr_cells(node: Node) -> int:
    return 2 if node.addr_cells == -1 else node.addr_cells


def _node_size_cells(node: Node) -> int:
    return 1 if node.size_cells == -1 else node.size_cells


def node_is_compatible(node: Node, compat: str) -> bool:
    """True if the node's "compatible" list contains ``compat``."""
    prop = node.get_property("compatible")
    if prop is None:
        return False
    raw = bytes(prop.val.val)
    entries = raw.split(b"\0")
    if raw.endswith(b"\0"):
        entries.pop()
    return compat.encode() in entries


def _node_is_disabled(node: Node) -> bool:
    prop = node.get_property("status")
    return prop is not None and _c_string(prop.val.val) == "disabled"


def _names_is_string_list(check: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.active_properties():
        dash = prop.name.rfind("-")
        if dash < 0 or prop.name[dash:] != "-names":
            continue
        val = prop.val.val
        if val and val[-1] != 0:
            check.fail(dti, node, "property is not a string list", prop)


def _alias_paths(check: Check, dti: DtInfo, node: Node) -> None:
    if node.name != "aliases":
        return
    for prop in node.active_properties():
        if prop.name in ("phandle", "linux,phandle"):
            continue
        if not len(prop.val):
            check.fail(dti, node, "aliases property is not a valid node ((null))", prop)
            continue
        target = _c_string(prop.val.val)
        if get_node_by_path(dti.dt, target) is None:
            check.fail(
                dti, node, f"aliases property is not a valid node ({target})", prop
            )
            continue
        if any(ch not in _LOWERCASE_DIGITS_DASH for ch in prop.name):
            check.fail(
                dti, node, "aliases property name must include only lowercase and '-'"
            )


def _addr_size_cells(check: Check, dti: DtInfo, node: Node) -> None:
    node.addr_cells = -1
    node.size_cells = -1
    prop = node.get_property("#address-cells")
    if prop is not None:
        node.addr_cells = prop.cell()
    prop = node.get_property("#size-cells")
    if prop is not None:
        node.size_cells = prop.cell()


def _reg_format(check: Check, dti: DtInfo, node: Node) -> None:
    prop = node.get_property("reg")
    if prop is None:
        return
    if node.parent is None:
        check.fail(dti, node, 'Root node has a "reg" property')
        return
    length = len(prop.val)
    if length == 0:
        check.fail(dti, node, "property is empty", prop)

    addr_cells = _node_addr_cells(node.parent)
    size_cells = _node_size_cells(node.parent)
    entrylen = (addr_cells + size_cells) * _CELL_SIZE
    if not entrylen or length % entrylen:
        check.fail(
            dti,
            node,
            f"property has invalid length ({length} bytes) "
            f"(#address-cells == {addr_cells}, #size-cells == {size_cells})",
            prop,
        )


def _ranges_format(check: Check, dti: DtInfo, node: Node) -> None:
    prop = node.get_property("ranges")
    if prop is None:
        return
    if node.parent is None:
        check.fail(dti, node, 'Root node has a "ranges" property', prop)
        return

    p_addr = _node_addr_cells(node.parent)
    p_size = _node_size_cells(node.parent)
    c_addr = _node_addr_cells(node)
    c_size = _node_size_cells(node)
    entrylen = (p_addr + c_addr + c_size) * _CELL_SIZE
    length = len(prop.val)

    if length == 0:
        if p_addr != c_addr:
            check.fail(
                dti,
                node,
                'empty "ranges" property but its '
                f"#address-cells ({c_addr}) differs from "
                f"{node.parent.fullpath} ({p_addr})",
                prop,
            )
        if p_size != c_size:
            check.fail(
                dti,
                node,
                'empty "ranges" property but its '
                f"#size-cells ({c_size}) differs from "
                f"{node.parent.fullpath} ({p_size})",
                prop,
            )
    elif not entrylen or length % entrylen:
        check.fail(
            dti,
            node,
            f'"ranges" property has invalid length ({length} bytes) '
            f"(parent #address-cells == {p_addr}, child #address-cells == {c_addr}, "
            f"#size-cells == {c_size})",
            prop,
        )


def _pci_bridge(check: Check, dti: DtInfo, node: Node) -> None:
    prop = node.get_property("device_type")
    if prop is None or _c_string(prop.val.val) != "pci":
        return

    node.bus = PCI_BUS

    if _basename(node) not in ("pci", "pcie"):
        check.fail(dti, node, 'node name is not "pci" or "pcie"')

    if node.get_property("ranges") is None:
        check.fail(dti, node, "missing ranges for PCI bridge (or not a bridge)")

    if _node_addr_cells(node) != 3:
        check.fail(dti, node, "incorrect #address-cells for PCI bridge")
    if _node_size_cells(node) != 2:
        check.fail(dti, node, "incorrect #size-cells for PCI bridge")

    prop = node.get_property("bus-range")
    if prop is None:
        return
    if len(prop.val) != 2 * _CELL_SIZE:
        check.fail(dti, node, "value must be 2 cells", prop)
        return
    first, last = _cells(prop)
    if first > last:
        check.fail(dti, node, "1st cell must be less than or equal to 2nd cell", prop)
    if last > 0xFF:
        check.fail(dti, node, "maximum bus number must be less than 256", prop)


def _pci_device_bus_num(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus is not PCI_BUS:
        return
    prop = node.get_property("reg")
    if prop is None:
        return
    cells = _cells(prop)
    if not cells:
        return
    bus_num = (cells[0] & 0x00FF0000) >> 16

    prop = node.parent.get_property("bus-range")
    if prop is None:
        min_bus = max_bus = 0
    else:
        range_cells = _cells(prop)
        if not range_cells:
            return
        min_bus = max_bus = range_cells[0]
    if bus_num < min_bus or bus_num > max_bus:
        check.fail(
            dti,
            node,
            f"PCI bus number {bus_num} out of range, expected ({min_bus} - {max_bus})",
            prop,
        )


def _pci_device_reg(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus is not PCI_BUS:
        return
    prop = node.get_property("reg")
    if prop is None:
        check.fail(dti, node, "missing PCI reg property")
        return

    cells = _cells(prop) + [0, 0, 0]
    if cells[1] or cells[2]:
        check.fail(
            dti, node, "PCI reg config space address cells 2 and 3 must be 0", prop
        )

    reg = cells[0]
    dev = (reg & 0xF800) >> 11
    func = (reg & 0x700) >> 8

    if reg & 0xFF000000:
        check.fail(dti, node, "PCI reg address is not configuration space", prop)
    if reg & 0x000000FF:
        check.fail(
            dti, node, "PCI reg config space address register number must be 0", prop
        )

    unitname = node.unitname()
    if func == 0 and unitname == f"{dev:x}":
        return
    expected = f"{dev:x},{func:x}"
    if unitname == expected:
        return
    check.fail(dti, node, f'PCI unit address format error, expected "{expected}"')


def _simple_bus_bridge(check: Check, dti: DtInfo, node: Node) -> None:
    if node_is_compatible(node, "simple-bus"):
        node.bus = SIMPLE_BUS


def _simple_bus_reg(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus is not SIMPLE_BUS:
        return

    cells: list[int] | None = None
    prop = node.get_property("reg")
    if prop is not None:
        if len(prop.val):
            cells = _cells(prop)
    else:
        prop = node.get_property("ranges")
        if prop is not None and len(prop.val):
            # Skip the child address.
            cells = _cells(prop)[_node_addr_cells(node):]

    if cells is None:
        if node.parent.parent is not None and node.bus is not SIMPLE_BUS:
            check.fail(dti, node, "missing or empty reg/ranges property")
        return

    reg = 0
    for word in cells[: _node_addr_cells(node.parent)]:
        reg = ((reg << 32) | word) & _UINT64_MASK

    expected = f"{reg:x}"
    if node.unitname() != expected:
        check.fail(
            dti, node, f'simple-bus unit address format error, expected "{expected}"'
        )


def _i2c_bus_bridge(check: Check, dti: DtInfo, node: Node) -> None:
    base = _basename(node)
    if base in ("i2c-bus", "i2c-arb"):
        node.bus = I2C_BUS
    elif base == "i2c":
        if any(
            _prefixeq(child.name, node.basenamelen, "i2c-bus")
            for child in node.active_children()
        ):
            return
        node.bus = I2C_BUS
    else:
        return

    if not node.children:
        return
    if _node_addr_cells(node) != 1:
        check.fail(dti, node, "incorrect #address-cells for I2C bus")
    if _node_size_cells(node) != 0:
        check.fail(dti, node, "incorrect #size-cells for I2C bus")


def _i2c_bus_reg(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus is not I2C_BUS:
        return

    prop = node.get_property("reg")
    cells = _cells(prop) if prop is not None else []
    if not cells:
        check.fail(dti, node, "missing or empty reg property")
        return

    expected = f"{cells[0]:x}"
    if node.unitname() != expected:
        check.fail(
            dti, node, f'I2C bus unit address format error, expected "{expected}"'
        )

    for reg in cells:
        if reg > 0x3FF:
            check.fail(
                dti,
                node,
                f'I2C address must be less than 10-bits, got "0x{reg:x}"',
                prop,
            )


def _spi_bus_bridge(check: Check, dti: DtInfo, node: Node) -> None:
    spi_addr_cells = 1

    if _basename(node) == "spi":
        node.bus = SPI_BUS
    else:
        # Try to detect SPI buses which lack a proper node name.
        if _node_addr_cells(node) != 1 or _node_size_cells(node) != 0:
            return
        if any(
            prop.name.startswith("spi-")
            for child in node.active_children()
            for prop in child.active_properties()
        ):
            node.bus = SPI_BUS
        if node.bus is SPI_BUS and node.get_property("reg") is not None:
            check.fail(dti, node, "node name for SPI buses should be 'spi'")

    if node.bus is not SPI_BUS or not node.children:
        return

    if node.get_property("spi-slave") is not None:
        spi_addr_cells = 0
    if _node_addr_cells(node) != spi_addr_cells:
        check.fail(dti, node, "incorrect #address-cells for SPI bus")
    if _node_size_cells(node) != 0:
        check.fail(dti, node, "incorrect #size-cells for SPI bus")


def _spi_bus_reg(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus is not SPI_BUS:
        return
    if node.parent.get_property("spi-slave") is not None:
        return

    prop = node.get_property("reg")
    cells = _cells(prop) if prop is not None else []
    if not cells:
        check.fail(dti, node, "missing or empty reg property")
        return

    expected = f"{cells[0]:x}"
    if node.unitname() != expected:
        check.fail(
            dti, node, f'SPI bus unit address format error, expected "{expected}"'
        )


def _unit_address_format(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is not None and node.parent.bus is not None:
        return
    unitname = node.unitname()
    if not unitname:
        return
    if unitname.startswith("0x"):
        check.fail(dti, node, 'unit name should not have leading "0x"')
        unitname = unitname[2:]
    if unitname[:1] == "0" and unitname[1:2] != "" and unitname[1] in string.hexdigits:
        check.fail(dti, node, "unit name should not have leading 0s")


def _avoid_default_addr_size(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None:
        return
    if node.get_property("reg") is None and node.get_property("ranges") is None:
        return
    if node.parent.addr_cells == -1:
        check.fail(dti, node, "Relying on default #address-cells value")
    if node.parent.size_cells == -1:
        check.fail(dti, node, "Relying on default #size-cells value")


def _avoid_unnecessary_addr_size(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.addr_cells < 0 or node.size_cells < 0:
        return
    if node.get_property("ranges") is not None or not node.children:
        return
    if not any(
        child.get_property("reg") is not None for child in node.active_children()
    ):
        check.fail(
            dti,
            node,
            "unnecessary #address-cells/#size-cells without "
            '"ranges" or child "reg" property',
        )


def _unique_unit_address_common(
    check: Check, dti: DtInfo, node: Node, disable_check: bool
) -> None:
    if node.addr_cells < 0 or node.size_cells < 0:
        return
    if not node.children:
        return

    for childa in node.active_children():
        addr_a = childa.unitname()
        if not addr_a:
            continue
        if disable_check and _node_is_disabled(childa):
            continue
        for childb in node.active_children():
            if childa is childb:
                break
            if disable_check and _node_is_disabled(childb):
                continue
            if addr_a == childb.unitname():
                check.fail(
                    dti,
                    childb,
                    f"duplicate unit-address (also used in node {childa.fullpath})",
                )


def _unique_unit_address(check: Check, dti: DtInfo, node: Node) -> None:
    _unique_unit_address_common(check, dti, node, False)


def _unique_unit_address_if_enabled(check: Check, dti: DtInfo, node: Node) -> None:
    _unique_unit_address_common(check, dti, node, True)


def _obsolete_chosen_interrupt_controller(
    check: Check, dti: DtInfo, node: Node
) -> None:
    if node is not dti.dt:
        return
    chosen = get_node_by_path(dti.dt, "/chosen")
    if chosen is None:
        return
    prop = chosen.get_property("interrupt-controller")
    if prop is not None:
        check.fail(
            dti, node, '/chosen has obsolete "interrupt-controller" property', prop
        )


def _chosen_node_is_root(check: Check, dti: DtInfo, node: Node) -> None:
    if node.name != "chosen":
        return
    if node.parent is not dti.dt:
        check.fail(dti, node, "chosen node must be at root node")


def _require_string(check: Check, dti: DtInfo, node: Node, prop: Property) -> None:
    if not prop.val.is_one_string():
        check.fail(dti, node, "property is not a string", prop)


def _chosen_node_bootargs(check: Check, dti: DtInfo, node: Node) -> None:
    if node.name != "chosen":
        return
    prop = node.get_property("bootargs")
    if prop is None:
        return
    _require_string(check, dti, node, prop)


def _chosen_node_stdout_path(check: Check, dti: DtInfo, node: Node) -> None:
    if node.name != "chosen":
        return
    prop = node.get_property("stdout-path")
    if prop is None:
        prop = node.get_property("linux,stdout-path")
        if prop is None:
            return
        check.fail(dti, node, "Use 'stdout-path' instead", prop)
    _require_string(check, dti, node, prop)


CHECKS = [
    Check("address_cells_is_cell", check_is_cell, "#address-cells", warn=True),
    Check("size_cells_is_cell", check_is_cell, "#size-cells", warn=True),
    Check("interrupt_cells_is_cell", check_is_cell, "#interrupt-cells", warn=True),
    Check("device_type_is_string", check_is_string, "device_type", warn=True),
    Check("model_is_string", check_is_string, "model", warn=True),
    Check("status_is_string", check_is_string, "status", warn=True),
    Check("label_is_string", check_is_string, "label", warn=True),
    Check(
        "compatible_is_string_list", check_is_string_list, "compatible", warn=True
    ),
    Check("names_is_string_list", _names_is_string_list, warn=True),
    Check("alias_paths", _alias_paths, warn=True),
    Check(
        "addr_size_cells",
        _addr_size_cells,
        warn=True,
        prereqs=("address_cells_is_cell", "size_cells_is_cell"),
    ),
    Check("reg_format", _reg_format, warn=True, prereqs=("addr_size_cells",)),
    Check("ranges_format", _ranges_format, warn=True, prereqs=("addr_size_cells",)),
    Check(
        "pci_bridge",
        _pci_bridge,
        warn=True,
        prereqs=("device_type_is_string", "addr_size_cells"),
    ),
    Check(
        "pci_device_bus_num",
        _pci_device_bus_num,
        warn=True,
        prereqs=("reg_format", "pci_bridge"),
    ),
    Check(
        "pci_device_reg",
        _pci_device_reg,
        warn=True,
        prereqs=("reg_format", "pci_bridge"),
    ),
    Check(
        "simple_bus_bridge",
        _simple_bus_bridge,
        warn=True,
        prereqs=("addr_size_cells", "compatible_is_string_list"),
    ),
    Check(
        "simple_bus_reg",
        _simple_bus_reg,
        warn=True,
        prereqs=("reg_format", "simple_bus_bridge"),
    ),
    Check("i2c_bus_bridge", _i2c_bus_bridge, warn=True, prereqs=("addr_size_cells",)),
    Check(
        "i2c_bus_reg",
        _i2c_bus_reg,
        warn=True,
        prereqs=("reg_format", "i2c_bus_bridge"),
    ),
    Check("spi_bus_bridge", _spi_bus_bridge, warn=True, prereqs=("addr_size_cells",)),
    Check(
        "spi_bus_reg",
        _spi_bus_reg,
        warn=True,
        prereqs=("reg_format", "spi_bus_bridge"),
    ),
    Check(
        "unit_address_format",
        _unit_address_format,
        warn=True,
        prereqs=("node_name_format", "pci_bridge", "simple_bus_bridge"),
    ),
    Check(
        "avoid_default_addr_size",
        _avoid_default_addr_size,
        warn=True,
        prereqs=("addr_size_cells",),
    ),
    Check(
        "avoid_unnecessary_addr_size",
        _avoid_unnecessary_addr_size,
        warn=True,
        prereqs=("avoid_default_addr_size",),
    ),
    Check(
        "unique_unit_address",
        _unique_unit_address,
        warn=True,
        prereqs=("avoid_default_addr_size",),
    ),
    Check(
        "unique_unit_address_if_enabled",
        _unique_unit_address_if_enabled,
        prereqs=("avoid_default_addr_size",),
    ),
    Check(
        "obsolete_chosen_interrupt_controller",
        _obsolete_chosen_interrupt_controller,
        warn=True,
    ),
    Check("chosen_node_is_root", _chosen_node_is_root, warn=True),
    Check("chosen_node_bootargs", _chosen_node_bootargs, warn=True),
    Check("chosen_node_stdout_path", _chosen_node_stdout_path, warn=True),
]