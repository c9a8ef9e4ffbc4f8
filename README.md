# dtcheck

`dtcheck` holds an in-memory model of a device tree and the checks run over
such a tree before any output is written: duplicate node, property and label
names, bad characters in names, phandle and path reference fix-ups,
`reg`/`ranges` sizing, PCI, simple-bus, I2C and SPI unit addresses,
`#...-cells` arguments of provider properties, GPIOs, interrupts, aliases,
`/chosen`, and graph port/endpoint links.

It has no runtime dependencies and needs Python 3.10 or later.

## Modules

- `dtcheck.data` – `Data`, a mutable byte value (`val`, a `bytearray`) with an
  ordered list of `Marker`s, each a `MarkerType` at a byte offset with an
  optional reference string. Integers are appended big-endian
  (`append_integer` takes 8, 16, 32 or 64 bits and raises `ValueError` for any
  other width); `append_cell`, `append_addr`, `append_byte`, `append_re`,
  `append_zeroes` and `append_align` build on it. `merge` appends another
  value and carries its markers over with shifted offsets; `insert_at_marker`
  inserts bytes at a marker and moves the later markers along;
  `is_one_string` tells whether the value is exactly one NUL-terminated
  string. `Data.from_bytes` and `Data.from_file` create values.
- `dtcheck.tree` – `Node`, `Property`, `Label`, `ReserveEntry`, `DtInfo` and
  `PhandleFormat`, with the lookups `get_node_by_path`, `get_node_by_label`,
  `get_node_by_phandle`, `get_node_by_ref` (a path if it starts with `/`,
  otherwise a label), `get_property_by_label`, `get_marker_label`, and
  `get_node_phandle`, which allocates the lowest free phandle to a node that
  has none and adds `phandle` and/or `linux,phandle` properties according to
  the `PhandleFormat`. `fill_fullpaths` sets every node's `fullpath`.
  Deleting marks nodes, properties and labels as deleted rather than
  removing them; lookups skip deleted entries.
- `dtcheck.formats` – `guess_type_by_name` (by the `.dts`, `.dtb` or `.yaml`
  extension, case-insensitive), `guess_input_format` (`fs` for a directory,
  `dtb` for a regular file starting with the flattened-tree magic number,
  otherwise by name) and `is_power_of_2`.
- `dtcheck.checkbase` – `Check`, `CheckStatus`, `CheckConfig`, `resolve`, and
  the helpers `check_is_string`, `check_is_string_list` and `check_is_cell`.
  A check runs its prerequisites first; if any of them does not pass, the
  check itself is not run and is left in the `PREREQ` state.
- `dtcheck.structural`, `dtcheck.semantic`, `dtcheck.providers` – the checks
  themselves, each module exposing a `CHECKS` list of templates, plus the
  public helpers `node_is_compatible` (semantic) and `prop_is_gpio`
  (providers).
- `dtcheck.registry` – `CheckRegistry`, a fresh set of every check in its
  fixed run order, and `TreeErrors`.

## Building property values

```python
from dtcheck.data import Data, MarkerType

value = Data().append_cell(0x12345678).append_integer(0xABCD, 16)
assert bytes(value.val) == b"\x12\x34\x56\x78\xab\xcd"

name = Data.from_bytes(b"serial\0")
assert name.is_one_string()

name.merge(value)            # appends in place and returns the same object
types = list(name.markers_of_type(MarkerType.LABEL))
```

## Running the checks

```python
import io

from dtcheck.checkbase import CheckConfig
from dtcheck.data import Data
from dtcheck.registry import CheckRegistry, TreeErrors
from dtcheck.tree import DtInfo, Node, Property, fill_fullpaths

root = Node("")
root.add_property(Property("#address-cells", Data().append_cell(1)))
root.add_property(Property("#size-cells", Data().append_cell(0)))

serial = Node("serial@10")
serial.add_property(Property("reg", Data().append_cell(0x10)))
root.add_child(serial)
root.add_child(Node("uart@20"))          # unit name but no "reg"

fill_fullpaths(root, "")
dti = DtInfo(root, outname="board.dtb")

out = io.StringIO()
registry = CheckRegistry()
registry.parse_option(True, False, "no-unique_unit_address")  # turn a warning off
try:
    registry.process(dti, force=False, config=CheckConfig(stream=out))
except TreeErrors:
    ...  # an error-level check failed and output was not forced

print(out.getvalue())
# board.dtb: Warning (unit_address_vs_reg): /uart@20: node has a unit name, but no reg property
```

Check names are the usual device tree check names (`duplicate_node_names`,
`reg_format`, `clocks_property`, `graph_endpoint`, `always_fail`, ...);
`registry.get(name)` returns one and iterating the registry yields them in
run order. `parse_option(warn, error, name)` raises a check to warning and/or
error level, and also raises its prerequisites; prefixing the name with `no-`
or `no_` lowers it instead, and also lowers every check that depends on it.
An unknown name raises `ValueError`. Only checks at warning or error level
are run.

`process` returns `True` when an error-level check failed and `force` was
set (and then writes `Warning: Input tree has errors, output forced` unless
`quiet` is 3 or more); without `force` it raises `TreeErrors`. It returns
`False` when no errors were found.

Messages take the form `where: Warning (name): /path:prop: text` or
`... ERROR (name) ...`, where `where` is the node's or property's `srcpos`
if set, otherwise `<stdout>` for an `outname` of `-`, otherwise `outname`.
`CheckConfig` sets where they go (`stream`, standard error by default), how
many appear (`quiet`: 1 hides warnings, 2 also hides errors), whether
labelled nodes are kept by `omit_unused_nodes` (`generate_symbols`), and
which phandle properties are added when references are fixed up
(`phandle_format`).

Checks change the tree as they go: phandle references are filled in with the
target's phandle (or `0xffffffff` in a plugin tree, `dtsflags & DTSF_PLUGIN`,
when the target is missing), path references have the target's full path
inserted, redundant `name` properties are removed, unreferenced nodes marked
`omit_if_unused` are deleted, and nodes get their `phandle`, `addr_cells`,
`size_cells` and `bus` set.

## What it does not do

`dtcheck` reads and writes no device tree files. It has no source-text
parser, no flattened-blob reader or writer, no assembler or YAML output, no
directory-tree reader and no command-line program: trees are built in Python
from `Node` and `Property` objects, and `dtcheck.formats` only guesses what
kind of input a path names.