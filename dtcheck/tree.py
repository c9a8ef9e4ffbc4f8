"""The live device tree: nodes, properties, labels and lookups."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterator

from dtcheck.data import Data, Marker, MarkerType

DTSF_V1 = 0x0001
DTSF_PLUGIN = 0x0002

_CELL_SIZE = 4


class PhandleFormat(enum.IntFlag):
    """Which phandle properties are generated."""

    LEGACY = 0x1
    EPAPR = 0x2
    BOTH = 0x3


@dataclass(eq=False)
class Label:
    """A label attached to a node, property or reserve entry."""

    label: str
    deleted: bool = False


@dataclass(eq=False)
class Property:
    """A named property of a node."""

    name: str
    val: Data = field(default_factory=Data)
    labels: list[Label] = field(default_factory=list)
    srcpos: Any = None
    deleted: bool = False

    def cell(self, n: int = 0) -> int:
        """Return the ``n``-th big-endian 32-bit cell of the value."""
        start = n * _CELL_SIZE
        if n < 0 or start + _CELL_SIZE > len(self.val):
            raise IndexError(f"property {self.name!r} has no cell {n}")
        return int.from_bytes(self.val.val[start:start + _CELL_SIZE], "big")


@dataclass(eq=False)
class Node:
    """A node of the tree."""

    name: str = ""
    properties: list[Property] = field(default_factory=list)
    children: list["Node"] = field(default_factory=list)
    parent: "Node | None" = field(default=None, repr=False)
    fullpath: str = ""
    phandle: int = 0
    addr_cells: int = -1
    size_cells: int = -1
    labels: list[Label] = field(default_factory=list)
    bus: Any = None
    srcpos: Any = None
    omit_if_unused: bool = False
    is_referenced: bool = False
    deleted: bool = False

    @property
    def basenamelen(self) -> int:
        """Length of the name before any unit address."""
        at = self.name.find("@")
        return len(self.name) if at < 0 else at

    def add_property(self, prop: Property) -> None:
        """Append a property."""
        self.properties.append(prop)

    def add_child(self, child: "Node") -> None:
        """Append a child node and make this node its parent."""
        child.parent = self
        self.children.append(child)

    def active_properties(self) -> Iterator[Property]:
        """Yield the properties that are not deleted."""
        return (p for p in self.properties if not p.deleted)

    def active_children(self) -> Iterator["Node"]:
        """Yield the children that are not deleted."""
        return (c for c in self.children if not c.deleted)

    def get_property(self, name: str) -> Property | None:
        """Return the first live property with this name, if any."""
        return next((p for p in self.active_properties() if p.name == name), None)

    def get_subnode(self, name: str) -> "Node | None":
        """Return the first live child with this exact name, if any."""
        return next((c for c in self.active_children() if c.name == name), None)

    def unitname(self) -> str:
        """Return the unit address part of the name, or an empty string."""
        _, _, unit = self.name.partition("@")
        return unit

    def delete(self) -> None:
        """Mark this node, its subtree, its properties and labels as deleted."""
        self.deleted = True
        for child in self.children:
            child.delete()
        for prop in self.properties:
            _delete_property(prop)
        for label in self.labels:
            label.deleted = True

    def delete_property_by_name(self, name: str) -> None:
        """Mark the first live property with this name as deleted."""
        prop = self.get_property(name)
        if prop is not None:
            _delete_property(prop)


def _delete_property(prop: Property) -> None:
    prop.deleted = True
    for label in prop.labels:
        label.deleted = True


@dataclass(eq=False)
class ReserveEntry:
    """A memory reservation entry."""

    address: int
    size: int
    labels: list[Label] = field(default_factory=list)


@dataclass(eq=False)
class DtInfo:
    """A tree together with its reservations and header information."""

    dt: Node
    dtsflags: int = 0
    reservelist: list[ReserveEntry] = field(default_factory=list)
    boot_cpuid_phys: int = 0
    outname: str = "-"


def _join_path(prefix: str, name: str) -> str:
    if prefix.endswith("/"):
        return prefix + name
    return f"{prefix}/{name}"


def fill_fullpaths(tree: Node, prefix: str = "") -> None:
    """Set the full path of every node in the subtree."""
    tree.fullpath = _join_path(prefix, tree.name)
    for child in tree.active_children():
        fill_fullpaths(child, tree.fullpath)


def get_node_by_path(tree: Node, path: str) -> Node | None:
    """Find a node by its path relative to ``tree``."""
    path = path.lstrip("/")
    if not path:
        return tree
    head, sep, rest = path.partition("/")
    for child in tree.active_children():
        if child.name == head:
            return get_node_by_path(child, rest) if sep else child
    return None


def get_node_by_label(tree: Node, label: str) -> Node | None:
    """Find the first node carrying the given live label."""
    if any(not l.deleted and l.label == label for l in tree.labels):
        return tree
    for child in tree.active_children():
        found = get_node_by_label(child, label)
        if found is not None:
            return found
    return None


def get_node_by_phandle(tree: Node, phandle: int) -> Node | None:
    """Find the node with the given phandle value."""
    if phandle in (0, 0xFFFFFFFF, -1):
        return None
    if tree.phandle == phandle:
        return None if tree.deleted else tree
    for child in tree.active_children():
        found = get_node_by_phandle(child, phandle)
        if found is not None:
            return found
    return None


def get_node_by_ref(tree: Node, ref: str) -> Node | None:
    """Resolve a reference that is either a path or a label."""
    if ref.startswith("/"):
        return get_node_by_path(tree, ref)
    return get_node_by_label(tree, ref)


def get_property_by_label(tree: Node, label: str) -> tuple[Node, Property] | None:
    """Find the first property carrying the given live label, with its node."""
    for prop in tree.active_properties():
        if any(not l.deleted and l.label == label for l in prop.labels):
            return tree, prop
    for child in tree.active_children():
        found = get_property_by_label(child, label)
        if found is not None:
            return found
    return None


def get_marker_label(tree: Node, label: str) -> tuple[Node, Property, Marker] | None:
    """Find the first label marker with the given name inside a property value."""
    for prop in tree.active_properties():
        for marker in prop.val.markers_of_type(MarkerType.LABEL):
            if marker.ref == label:
                return tree, prop, marker
    for child in tree.active_children():
        found = get_marker_label(child, label)
        if found is not None:
            return found
    return None


def get_node_phandle(
    root: Node, node: Node, phandle_format: PhandleFormat = PhandleFormat.EPAPR
) -> int:
    """Return the node's phandle, allocating a fresh one if it has none."""
    if node.phandle not in (0, 0xFFFFFFFF, -1):
        return node.phandle

    phandle = 1
    while get_node_by_phandle(root, phandle) is not None:
        phandle += 1
    node.phandle = phandle

    def value() -> Data:
        return Data().add_marker(MarkerType.TYPE_UINT32).append_cell(phandle)

    if node.get_property("linux,phandle") is None and phandle_format & PhandleFormat.LEGACY:
        node.add_property(Property("linux,phandle", value()))
    if node.get_property("phandle") is None and phandle_format & PhandleFormat.EPAPR:
        node.add_property(Property("phandle", value()))
    return phandle