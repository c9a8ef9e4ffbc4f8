"""Checks on phandle-with-arguments properties, interrupts and graph bindings."""

from __future__ import annotations

from dataclasses import dataclass

from dtcheck.checkbase import Check
from dtcheck.data import MarkerType
from dtcheck.semantic import BusType
from dtcheck.tree import DTSF_PLUGIN, DtInfo, Node, Property, get_node_by_phandle

_CELL_SIZE = 4
_UNRESOLVED = 0xFFFFFFFF

GRAPH_PORT_BUS = BusType("graph-port")
GRAPH_PORTS_BUS = BusType("graph-ports")


@dataclass(frozen=True)
class _Provider:
    prop_name: str
    cell_name: str
    optional: bool = False


def _first_cell(prop: Property) -> int:
    return prop.cell() if len(prop.val) >= _CELL_SIZE else 0


def _basename(node: Node) -> str:
    return node.name[: node.basenamelen]


def _check_property_phandle_args(
    check: Check, dti: DtInfo, node: Node, prop: Property, provider: _Provider
) -> None:
    length = len(prop.val)
    if length % _CELL_SIZE:
        check.fail(
            dti,
            node,
            f"property size ({length}) is invalid, expected multiple of {_CELL_SIZE}",
            prop,
        )
        return

    ncells = length // _CELL_SIZE
    cell = 0
    cellsize = 0
    while cell < ncells:
        phandle = prop.cell(cell)
        # Some bindings use 0 or -1 to skip over optional entries.
        if phandle in (0, _UNRESOLVED):
            if dti.dtsflags & DTSF_PLUGIN:
                break
            cellsize = 0
            cell += 1
            continue

        if prop.val.markers:
            offset = cell * _CELL_SIZE
            if not any(
                m.offset == offset
                for m in prop.val.markers_of_type(MarkerType.REF_PHANDLE)
            ):
                check.fail(dti, node, f"cell {cell} is not a phandle reference", prop)

        provider_node = get_node_by_phandle(dti.dt, phandle)
        if provider_node is None:
            check.fail(dti, node, f"Could not get phandle node for (cell {cell})", prop)
            break

        cellprop = provider_node.get_property(provider.cell_name)
        if cellprop is not None:
            cellsize = _first_cell(cellprop)
        elif provider.optional:
            cellsize = 0
        else:
            check.fail(
                dti,
                node,
                f"Missing property '{provider.cell_name}' in node "
                f"{provider_node.fullpath} or bad phandle "
                f"(referred from {prop.name}[{cell}])",
            )
            break

        if length < (cell + cellsize + 1) * _CELL_SIZE:
            check.fail(
                dti,
                node,
                f"property size ({length}) too small for cell size {cellsize}",
                prop,
            )
        cell += cellsize + 1


def _provider_cells_property(check: Check, dti: DtInfo, node: Node) -> None:
    provider: _Provider = check.data
    prop = node.get_property(provider.prop_name)
    if prop is None:
        return
    _check_property_phandle_args(check, dti, node, prop, provider)


def prop_is_gpio(prop: Property) -> bool:
    """True if the property name designates GPIO specifiers."""
    name = prop.name
    # "nr-gpios" is a known false match.
    if "nr-gpio" in name:
        return False
    dash = name.rfind("-")
    suffix = name[dash + 1:] if dash >= 0 else name
    return suffix in ("gpios", "gpio")


def _gpios_property(check: Check, dti: DtInfo, node: Node) -> None:
    # GPIO hog nodes carry a "gpios" property of their own kind.
    if node.get_property("gpio-hog") is not None:
        return
    for prop in node.active_properties():
        if not prop_is_gpio(prop):
            continue
        _check_property_phandle_args(
            check, dti, node, prop, _Provider(prop.name, "#gpio-cells")
        )


def _deprecated_gpio_property(check: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.active_properties():
        if not prop_is_gpio(prop):
            continue
        if prop.name[prop.name.find("gpio"):] != "gpio":
            continue
        check.fail(dti, node, "'[*-]gpio' is deprecated, use '[*-]gpios' instead", prop)


def _node_is_interrupt_provider(node: Node) -> bool:
    return (
        node.get_property("interrupt-controller") is not None
        or node.get_property("interrupt-map") is not None
    )


def _interrupts_property(check: Check, dti: DtInfo, node: Node) -> None:
    irq_prop = node.get_property("interrupts")
    if irq_prop is None:
        return
    length = len(irq_prop.val)
    if length % _CELL_SIZE:
        check.fail(
            dti,
            node,
            f"size ({length}) is invalid, expected multiple of {_CELL_SIZE}",
            irq_prop,
        )

    irq_node: Node | None = None
    parent: Node | None = node
    prop: Property | None = None
    while parent is not None and prop is None:
        if parent is not node and _node_is_interrupt_provider(parent):
            irq_node = parent
            break

        prop = parent.get_property("interrupt-parent")
        if prop is not None:
            phandle = _first_cell(prop)
            if phandle in (0, _UNRESOLVED):
                # Give up on overlays with external references.
                if dti.dtsflags & DTSF_PLUGIN:
                    return
                check.fail(dti, parent, "Invalid phandle", prop)
                continue

            irq_node = get_node_by_phandle(dti.dt, phandle)
            if irq_node is None:
                check.fail(dti, parent, "Bad phandle", prop)
                return
            if not _node_is_interrupt_provider(irq_node):
                check.fail(
                    dti,
                    irq_node,
                    "Missing interrupt-controller or interrupt-map property",
                )
            break

        parent = parent.parent

    if irq_node is None:
        check.fail(dti, node, "Missing interrupt-parent")
        return

    prop = irq_node.get_property("#interrupt-cells")
    if prop is None:
        check.fail(dti, irq_node, "Missing #interrupt-cells in interrupt-parent")
        return

    entry = _first_cell(prop) * _CELL_SIZE
    if not entry or length % entry:
        check.fail(
            dti, node, f"size is ({length}), expected multiple of {entry}", prop
        )


def _graph_nodes(check: Check, dti: DtInfo, node: Node) -> None:
    for child in node.active_children():
        if not (
            _basename(child) == "endpoint"
            or child.get_property("remote-endpoint") is not None
        ):
            continue
        node.bus = GRAPH_PORT_BUS
        # The parent of 'port' nodes can be either 'ports' or a device.
        parent = node.parent
        if (
            parent is not None
            and parent.bus is None
            and (parent.name == "ports" or node.get_property("reg") is not None)
        ):
            parent.bus = GRAPH_PORTS_BUS
        break


def _graph_child_address(check: Check, dti: DtInfo, node: Node) -> None:
    if node.bus is not GRAPH_PORTS_BUS and node.bus is not GRAPH_PORT_BUS:
        return
    count = 0
    for child in node.active_children():
        prop = child.get_property("reg")
        # Any non-zero unit address is fine.
        if prop is not None and _first_cell(prop) != 0:
            return
        count += 1
    if count == 1 and node.addr_cells != -1:
        check.fail(
            dti,
            node,
            f"graph node has single child node '{node.children[0].name}', "
            "#address-cells/#size-cells are not necessary",
        )


def _graph_reg(check: Check, dti: DtInfo, node: Node) -> None:
    prop = node.get_property("reg")
    if prop is None:
        return
    if len(prop.val) != _CELL_SIZE:
        check.fail(dti, node, "graph node malformed 'reg' property")
        return

    expected = f"{prop.cell():x}"
    if node.unitname() != expected:
        check.fail(dti, node, f'graph node unit address error, expected "{expected}"')

    parent = node.parent
    if parent is None:
        return
    if parent.addr_cells != 1:
        check.fail(
            dti,
            node,
            f"graph node '#address-cells' is {parent.addr_cells}, must be 1",
            node.get_property("#address-cells"),
        )
    if parent.size_cells != 0:
        check.fail(
            dti,
            node,
            f"graph node '#size-cells' is {parent.size_cells}, must be 0",
            node.get_property("#size-cells"),
        )


def _graph_port(check: Check, dti: DtInfo, node: Node) -> None:
    if node.bus is not GRAPH_PORT_BUS:
        return
    if _basename(node) != "port":
        check.fail(dti, node, "graph port node name should be 'port'")
    _graph_reg(check, dti, node)


def _remote_endpoint(check: Check, dti: DtInfo, endpoint: Node) -> Node | None:
    prop = endpoint.get_property("remote-endpoint")
    if prop is None:
        return None
    phandle = _first_cell(prop)
    # Give up on overlays with external references.
    if phandle in (0, _UNRESOLVED):
        return None
    remote = get_node_by_phandle(dti.dt, phandle)
    if remote is None:
        check.fail(dti, endpoint, "graph phandle is not valid", prop)
    return remote


def _graph_endpoint(check: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus is not GRAPH_PORT_BUS:
        return
    if _basename(node) != "endpoint":
        check.fail(dti, node, "graph endpoint node name should be 'endpoint'")
    _graph_reg(check, dti, node)

    remote = _remote_endpoint(check, dti, node)
    if remote is None:
        return
    if _remote_endpoint(check, dti, remote) is not node:
        check.fail(
            dti,
            node,
            f"graph connection to node '{remote.fullpath}' is not bidirectional",
        )


def _provider_check(name: str, prop_name: str, cell_name: str, optional: bool = False) -> Check:
    return Check(
        f"{name}_property",
        _provider_cells_property,
        _Provider(prop_name, cell_name, optional),
        warn=True,
        prereqs=("phandle_references",),
    )


CHECKS = [
    _provider_check("clocks", "clocks", "#clock-cells"),
    _provider_check("cooling_device", "cooling-device", "#cooling-cells"),
    _provider_check("dmas", "dmas", "#dma-cells"),
    _provider_check("hwlocks", "hwlocks", "#hwlock-cells"),
    _provider_check("interrupts_extended", "interrupts-extended", "#interrupt-cells"),
    _provider_check("io_channels", "io-channels", "#io-channel-cells"),
    _provider_check("iommus", "iommus", "#iommu-cells"),
    _provider_check("mboxes", "mboxes", "#mbox-cells"),
    _provider_check("msi_parent", "msi-parent", "#msi-cells", True),
    _provider_check("mux_controls", "mux-controls", "#mux-control-cells"),
    _provider_check("phys", "phys", "#phy-cells"),
    _provider_check("power_domains", "power-domains", "#power-domain-cells"),
    _provider_check("pwms", "pwms", "#pwm-cells"),
    _provider_check("resets", "resets", "#reset-cells"),
    _provider_check("sound_dai", "sound-dai", "#sound-dai-cells"),
    _provider_check("thermal_sensors", "thermal-sensors", "#thermal-sensor-cells"),
    Check("deprecated_gpio_property", _deprecated_gpio_property),
    Check(
        "gpios_property",
        _gpios_property,
        warn=True,
        prereqs=("phandle_references",),
    ),
    Check("interrupts_property", _interrupts_property, warn=True),
    Check("graph_nodes", _graph_nodes, warn=True),
    Check(
        "graph_child_address",
        _graph_child_address,
        warn=True,
        prereqs=("graph_nodes",),
    ),
    Check("graph_port", _graph_port, warn=True, prereqs=("graph_nodes",)),
    Check("graph_endpoint", _graph_endpoint, warn=True, prereqs=("graph_nodes",)),
]