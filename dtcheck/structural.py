"""Structural checks and reference fixups run over a live tree."""

from __future__ import annotations

import string

from dtcheck.checkbase import Check, check_is_string
from dtcheck.data import MarkerType
from dtcheck.tree import (
    DTSF_PLUGIN,
    DtInfo,
    Node,
    Property,
    get_marker_label,
    get_node_by_label,
    get_node_by_phandle,
    get_node_by_ref,
    get_node_phandle,
    get_property_by_label,
)

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
DIGITS = string.digits
PROPNODECHARS = LOWERCASE + UPPERCASE + DIGITS + ",._+*#?-"
PROPNODECHARSSTRICT = LOWERCASE + UPPERCASE + DIGITS + ",-"

_CELL_SIZE = 4
_UNRESOLVED = 0xFFFFFFFF


def _span(text: str, allowed: str) -> int:
    """Length of the leading run of ``text`` made only of ``allowed`` characters."""
    return next((i for i, ch in enumerate(text) if ch not in allowed), len(text))


def _c_string(raw: bytes | bytearray) -> str:
    return bytes(raw).split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _always_fail(check: Check, dti: DtInfo, node: Node) -> None:
    check.fail(dti, node, "always_fail check")


def _duplicate_node_names(check: Check, dti: DtInfo, node: Node) -> None:
    kids = node.children
    for index, child in enumerate(kids):
        if child.deleted:
            continue
        for other in kids[index + 1:]:
            if child.name == other.name:
                check.fail(dti, other, "Duplicate node name")


def _duplicate_property_names(check: Check, dti: DtInfo, node: Node) -> None:
    props = node.properties
    for index, prop in enumerate(props):
        if prop.deleted:
            continue
        for other in props[index + 1:]:
            if not other.deleted and prop.name == other.name:
                check.fail(dti, node, "Duplicate property name", prop)


def _node_name_chars(check: Check, dti: DtInfo, node: Node) -> None:
    n = _span(node.name, check.data)
    if n < len(node.name):
        check.fail(dti, node, f"Bad character '{node.name[n]}' in node name")


def _node_name_chars_strict(check: Check, dti: DtInfo, node: Node) -> None:
    n = _span(node.name, check.data)
    if n < node.basenamelen:
        check.fail(
            dti, node, f"Character '{node.name[n]}' not recommended in node name"
        )


def _node_name_format(check: Check, dti: DtInfo, node: Node) -> None:
    if "@" in node.unitname():
        check.fail(dti, node, "multiple '@' characters in node name")


def _unit_address_vs_reg(check: Check, dti: DtInfo, node: Node) -> None:
    if node.get_subnode("__overlay__") is not None:
        # Overlay fragments are a special case.
        return

    prop = node.get_property("reg")
    if prop is None:
        prop = node.get_property("ranges")
        if prop is not None and not len(prop.val):
            prop = None

    unitname = node.unitname()
    if prop is not None:
        if not unitname:
            check.fail(
                dti, node, "node has a reg or ranges property, but no unit name"
            )
    elif unitname:
        check.fail(dti, node, "node has a unit name, but no reg property")


def _property_name_chars(check: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.active_properties():
        n = _span(prop.name, check.data)
        if n < len(prop.name):
            check.fail(
                dti, node, f"Bad character '{prop.name[n]}' in property name", prop
            )


def _property_name_chars_strict(check: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.active_properties():
        name = prop.name
        n = _span(name, check.data)
        if n == len(name):
            continue
        if name == "device_type":
            continue
        # '#' is allowed only at the start of a name, after any vendor prefix.
        if name[n] == "#" and (n == 0 or name[n - 1] == ","):
            name = name[n + 1:]
            n = _span(name, check.data)
        if n < len(name):
            check.fail(
                dti,
                node,
                f"Character '{name[n]}' not recommended in property name",
                prop,
            )


def _describe_label(node: Node, prop: Property | None, marked: bool) -> str:
    text = "value of " if marked else ""
    if prop is not None:
        text += f"'{prop.name}' in "
    return text + node.fullpath


def _check_duplicate_label(
    check: Check,
    dti: DtInfo,
    label: str,
    node: Node,
    prop: Property | None,
    mark,
) -> None:
    othernode = get_node_by_label(dti.dt, label)
    otherprop = None
    othermark = None
    if othernode is None:
        found = get_property_by_label(dti.dt, label)
        if found is not None:
            othernode, otherprop = found
    if othernode is None:
        found_mark = get_marker_label(dti.dt, label)
        if found_mark is not None:
            othernode, otherprop, othermark = found_mark
    if othernode is None:
        return

    if othernode is not node or otherprop is not prop or othermark is not mark:
        check.fail(
            dti,
            node,
            f"Duplicate label '{label}' on "
            f"{_describe_label(node, prop, mark is not None)} and "
            f"{_describe_label(othernode, otherprop, othermark is not None)}",
        )


def _duplicate_label(check: Check, dti: DtInfo, node: Node) -> None:
    for label in node.labels:
        if not label.deleted:
            _check_duplicate_label(check, dti, label.label, node, None, None)

    for prop in node.active_properties():
        for label in prop.labels:
            if not label.deleted:
                _check_duplicate_label(check, dti, label.label, node, prop, None)
        for mark in prop.val.markers_of_type(MarkerType.LABEL):
            _check_duplicate_label(check, dti, mark.ref, node, prop, mark)


def _check_phandle_prop(check: Check, dti: DtInfo, node: Node, propname: str) -> int:
    prop = node.get_property(propname)
    if prop is None:
        return 0

    if len(prop.val) != _CELL_SIZE:
        check.fail(
            dti, node, f"bad length ({len(prop.val)}) {prop.name} property", prop
        )
        return 0

    for mark in prop.val.markers_of_type(MarkerType.REF_PHANDLE):
        # A reference to the node itself asks for a phandle to be allocated
        # later; a reference to another node makes no sense.
        if node is not get_node_by_ref(dti.dt, mark.ref):
            check.fail(dti, node, f"{prop.name} is a reference to another node")
        return 0

    phandle = prop.cell()
    if phandle in (0, _UNRESOLVED):
        check.fail(
            dti, node, f"bad value (0x{phandle:x}) in {prop.name} property", prop
        )
        return 0
    return phandle


def _explicit_phandles(check: Check, dti: DtInfo, node: Node) -> None:
    phandle = _check_phandle_prop(check, dti, node, "phandle")
    linux_phandle = _check_phandle_prop(check, dti, node, "linux,phandle")

    if not phandle and not linux_phandle:
        return

    if linux_phandle and phandle and phandle != linux_phandle:
        check.fail(
            dti, node, "mismatching 'phandle' and 'linux,phandle' properties"
        )

    if linux_phandle and not phandle:
        phandle = linux_phandle

    other = get_node_by_phandle(dti.dt, phandle)
    if other is not None and other is not node:
        check.fail(
            dti,
            node,
            f"duplicated phandle 0x{phandle:x} (seen before at {other.fullpath})",
        )
        return

    node.phandle = phandle


def _name_properties(check: Check, dti: DtInfo, node: Node) -> None:
    prop = next((p for p in node.properties if p.name == "name"), None)
    if prop is None:
        return

    base = node.name[: node.basenamelen].encode()
    val = prop.val.val
    if len(val) != node.basenamelen + 1 or bytes(val[: node.basenamelen]) != base:
        check.fail(
            dti,
            node,
            f'"name" property is incorrect ("{_c_string(val)}" instead'
            " of base node name)",
        )
    else:
        # The property is correct and therefore redundant.
        node.properties.remove(prop)


def _phandle_references(check: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.active_properties():
        for mark in prop.val.markers_of_type(MarkerType.REF_PHANDLE):
            offset = mark.offset
            refnode = get_node_by_ref(dti.dt, mark.ref)
            if refnode is None:
                if not dti.dtsflags & DTSF_PLUGIN:
                    check.fail(
                        dti,
                        node,
                        "Reference to non-existent node or "
                        f'label "{mark.ref}"\n',
                    )
                else:
                    prop.val.val[offset:offset + _CELL_SIZE] = _UNRESOLVED.to_bytes(
                        _CELL_SIZE, "big"
                    )
                continue

            phandle = get_node_phandle(dti.dt, refnode, check.config.phandle_format)
            prop.val.val[offset:offset + _CELL_SIZE] = phandle.to_bytes(
                _CELL_SIZE, "big"
            )
            refnode.is_referenced = True


def _path_references(check: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.active_properties():
        for mark in list(prop.val.markers_of_type(MarkerType.REF_PATH)):
            refnode = get_node_by_ref(dti.dt, mark.ref)
            if refnode is None:
                check.fail(
                    dti,
                    node,
                    f'Reference to non-existent node or label "{mark.ref}"\n',
                )
                continue
            prop.val.insert_at_marker(mark, refnode.fullpath.encode() + b"\0")
            refnode.is_referenced = True


def _omit_unused_nodes(check: Check, dti: DtInfo, node: Node) -> None:
    if check.config.generate_symbols and node.labels:
        return
    if node.omit_if_unused and not node.is_referenced:
        node.delete()


CHECKS = [
    Check("always_fail", _always_fail),
    Check("duplicate_node_names", _duplicate_node_names, error=True),
    Check("duplicate_property_names", _duplicate_property_names, error=True),
    Check("node_name_chars", _node_name_chars, PROPNODECHARS + "@", error=True),
    Check("node_name_chars_strict", _node_name_chars_strict, PROPNODECHARSSTRICT),
    Check(
        "node_name_format",
        _node_name_format,
        error=True,
        prereqs=("node_name_chars",),
    ),
    Check("unit_address_vs_reg", _unit_address_vs_reg, warn=True),
    Check("property_name_chars", _property_name_chars, PROPNODECHARS, error=True),
    Check(
        "property_name_chars_strict",
        _property_name_chars_strict,
        PROPNODECHARSSTRICT,
    ),
    Check("duplicate_label", _duplicate_label, error=True),
    Check("explicit_phandles", _explicit_phandles, error=True),
    Check("name_is_string", check_is_string, "name", error=True),
    Check(
        "name_properties",
        _name_properties,
        error=True,
        prereqs=("name_is_string",),
    ),
    Check(
        "phandle_references",
        _phandle_references,
        error=True,
        prereqs=("duplicate_node_names", "explicit_phandles"),
    ),
    Check(
        "path_references",
        _path_references,
        error=True,
        prereqs=("duplicate_node_names",),
    ),
    Check(
        "omit_unused_nodes",
        _omit_unused_nodes,
        error=True,
        prereqs=("phandle_references", "path_references"),
    ),
]