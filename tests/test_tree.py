import pytest

from dtcheck.data import Data, MarkerType
from dtcheck.tree import (
    DtInfo,
    Label,
    Node,
    PhandleFormat,
    Property,
    fill_fullpaths,
    get_marker_label,
    get_node_by_label,
    get_node_by_path,
    get_node_by_phandle,
    get_node_by_ref,
    get_node_phandle,
    get_property_by_label,
)


def cell_prop(name, value):
    return Property(name, Data().append_cell(value))


@pytest.fixture
def tree():
    root = Node("")
    sub1 = Node("subnode@1", labels=[Label("s1")])
    sub2 = Node("subnode@2")
    subsub = Node("subsubnode")
    subsub0 = Node("subsubnode@0")
    root.add_child(sub1)
    root.add_child(sub2)
    sub1.add_child(subsub)
    sub2.add_child(subsub0)
    sub2.phandle = 0x2000
    subsub0.phandle = 0x2001
    sub1.add_property(Property("compatible", Data.from_bytes(b"subnode1\0")))
    sub1.add_property(cell_prop("prop-int", 0xDEADBEEF))
    fill_fullpaths(root, "")
    return root


def test_fill_fullpaths(tree):
    assert tree.fullpath == "/"
    assert get_node_by_path(tree, "/subnode@1/subsubnode").fullpath == "/subnode@1/subsubnode"
    assert get_node_by_path(tree, "/subnode@2").fullpath == "/subnode@2"


def test_basename_and_unitname(tree):
    node = get_node_by_path(tree, "/subnode@1")
    assert node.basenamelen == len("subnode")
    assert node.unitname() == "1"
    assert get_node_by_path(tree, "/subnode@1/subsubnode").unitname() == ""


def test_get_node_by_path(tree):
    assert get_node_by_path(tree, "/") is tree
    assert get_node_by_path(tree, "/subnode@2/subsubnode@0").parent.name == "subnode@2"
    assert get_node_by_path(tree, "/nonexistant-subnode") is None
    assert get_node_by_path(tree, "/subnode@1/ss2") is None


def test_get_subnode_and_property(tree):
    sub1 = tree.get_subnode("subnode@1")
    assert sub1.get_property("prop-int").cell(0) == 0xDEADBEEF
    assert sub1.get_property("prop-str") is None
    assert tree.get_subnode("subsubnode") is None


def test_property_cell_out_of_range():
    prop = cell_prop("x", 1)
    with pytest.raises(IndexError):
        prop.cell(1)


def test_labels_and_refs(tree):
    sub1 = get_node_by_path(tree, "/subnode@1")
    assert get_node_by_label(tree, "s1") is sub1
    assert get_node_by_ref(tree, "s1") is sub1
    assert get_node_by_ref(tree, "/subnode@2").name == "subnode@2"
    assert get_node_by_label(tree, "missing") is None


def test_deleted_label_not_found(tree):
    sub1 = get_node_by_path(tree, "/subnode@1")
    sub1.labels[0].deleted = True
    assert get_node_by_label(tree, "s1") is None


def test_property_and_marker_labels(tree):
    sub2 = get_node_by_path(tree, "/subnode@2")
    prop = Property("p", Data().add_marker(MarkerType.LABEL, "inner").append_cell(5), labels=[Label("plab")])
    sub2.add_property(prop)
    assert get_property_by_label(tree, "plab") == (sub2, prop)
    node, found_prop, marker = get_marker_label(tree, "inner")
    assert (node, found_prop, marker.ref) == (sub2, prop, "inner")
    assert get_property_by_label(tree, "nope") is None
    assert get_marker_label(tree, "nope") is None


def test_get_node_by_phandle(tree):
    assert get_node_by_phandle(tree, 0x2001).name == "subsubnode@0"
    assert get_node_by_phandle(tree, 0) is None
    assert get_node_by_phandle(tree, 0xFFFFFFFF) is None


def test_get_node_phandle_existing(tree):
    sub2 = get_node_by_path(tree, "/subnode@2")
    assert get_node_phandle(tree, sub2) == 0x2000
    assert sub2.get_property("phandle") is None


@pytest.mark.parametrize(
    "fmt,legacy,epapr",
    [
        (PhandleFormat.LEGACY, True, False),
        (PhandleFormat.EPAPR, False, True),
        (PhandleFormat.BOTH, True, True),
    ],
)
def test_get_node_phandle_allocates(tree, fmt, legacy, epapr):
    sub1 = get_node_by_path(tree, "/subnode@1")
    ph = get_node_phandle(tree, sub1, fmt)
    assert ph not in (0, 0x2000, 0x2001)
    assert get_node_by_phandle(tree, ph) is sub1
    assert (sub1.get_property("linux,phandle") is not None) is legacy
    assert (sub1.get_property("phandle") is not None) is epapr
    for name in ("linux,phandle", "phandle"):
        prop = sub1.get_property(name)
        if prop is not None:
            assert prop.cell() == ph


def test_allocated_phandles_are_unique(tree):
    a = get_node_by_path(tree, "/subnode@1")
    b = get_node_by_path(tree, "/subnode@1/subsubnode")
    assert get_node_phandle(tree, a) != get_node_phandle(tree, b)


def test_delete_node(tree):
    sub1 = get_node_by_path(tree, "/subnode@1")
    sub1.delete()
    assert get_node_by_path(tree, "/subnode@1") is None
    assert [c.name for c in tree.active_children()] == ["subnode@2"]
    assert all(p.deleted for p in sub1.properties)
    assert get_node_by_label(tree, "s1") is None


def test_delete_property_by_name(tree):
    sub1 = get_node_by_path(tree, "/subnode@1")
    sub1.delete_property_by_name("prop-int")
    assert sub1.get_property("prop-int") is None
    assert [p.name for p in sub1.active_properties()] == ["compatible"]


def test_dtinfo_defaults(tree):
    dti = DtInfo(dt=tree)
    assert dti.outname == "-"
    assert dti.reservelist == []