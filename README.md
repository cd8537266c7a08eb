# dtcheck

`dtcheck` holds a device tree as Python objects and runs a suite of
structural, semantic and style checks over it: duplicate node, property and
label names, bad characters in names, phandle and path reference fixups,
`reg`/`ranges` sizing against `#address-cells`/`#size-cells`, PCI,
simple-bus, I2C and SPI bus conventions, phandle-with-arguments properties
(clocks, DMAs, resets, GPIOs, interrupts and more), `/aliases` and `/chosen`
rules, and port/endpoint graph wiring.

## Installation

```
pip install dtcheck
```

For the tests: `pip install dtcheck[test]`, then `pytest`.

## The model

- `dtcheck.data.Data` is a property value: a `bytearray` (`val`) plus a list
  of `Marker` objects, each with an `offset`, a `MarkerType` and an optional
  `ref`. Its mutating methods (`append`, `append_cell`, `append_integer`,
  `append_addr`, `append_byte`, `append_re`, `append_zeroes`,
  `append_align`, `add_marker`, `insert_at_marker`, `merge`) change the
  value in place and return it, so they chain. `Data.from_bytes` copies a
  bytes object; `Data.from_file` reads a binary stream, optionally up to a
  maximum length. `is_one_string()` tells whether the value is exactly one
  NUL-terminated string. `append_integer` accepts 8, 16, 32 or 64 bits and
  raises `ValueError` otherwise; values are stored big-endian.
- `dtcheck.tree` has `Node`, `Property`, `Label`, `BusType` and `DtInfo`.
  A `Node` takes a name and optional `properties`, `children` and `labels`;
  `add_child`, `add_property`, `get_property`, `get_subnode`, `walk` and
  `delete` work on it, and `fullpath`, `unitname` and `basenamelen` are
  derived from its name and position. `DtInfo` wraps the root node together
  with `outname`, `dtsflags` (`DTSF_V1`, `DTSF_PLUGIN`), `quiet` and
  `generate_symbols`.
- Lookups: `get_node_by_path`, `get_node_by_label`, `get_property_by_label`,
  `get_marker_label`, `get_node_by_phandle`, `get_node_by_ref` (a path, a
  label, or a label followed by a path) and `get_node_phandle` (which
  allocates the lowest free phandle and adds a `phandle` property when the
  node has none). `propval_cell`, `propval_cell_n`, `phandle_is_valid`,
  `node_addr_cells` (default 2) and `node_size_cells` (default 1) read cell
  values.

## Running checks

```python
from dtcheck.data import Data
from dtcheck.tree import Node, Property, DtInfo
from dtcheck.checklist import CheckSuite, TreeErrorsFound

root = Node("", properties=[
    Property("#address-cells", Data().append_cell(1)),
    Property("#size-cells", Data().append_cell(1)),
])
cpu = root.add_child(Node("cpu@0"))
cpu.add_property(Property("reg", Data().append_cell(0).append_cell(0x1000)))

suite = CheckSuite()
suite.parse_checks_option(True, False, "no-unit_address_vs_reg")
try:
    found_errors = suite.process_checks(False, DtInfo(root))
except TreeErrorsFound as exc:
    print(exc)
```

`CheckSuite()` builds a fresh, independent set of checks with their default
levels (warning, error, or off). `names()` lists every check in run order
and `get(name)` returns one `Check`.

`parse_checks_option(warn, error, name)` raises a check to warning and/or
error level; a name prefixed with `no-` or `no_` lowers it instead. Raising
a check also raises its prerequisites; lowering one also lowers every check
that depends on it. An unknown name raises `ValueError`.

`process_checks(force, dti)` runs every check that is enabled at some level,
running prerequisites first. It returns `True` if an error-level check
failed. In that case it raises `TreeErrorsFound` unless `force` is true; when
forced, and `dti.quiet` is below 3, it writes a note to standard error.

A check that fails writes a line to standard error and records it in the
check's `messages` list:

```
<source>: Warning (<check name>): <node path>: <message>
<source>: ERROR (<check name>): <node path>:<property>: <message>
```

`<source>` is the property's or node's `srcpos` if set, otherwise
`<stdout>` when `dti.outname` is `"-"`, otherwise `dti.outname`. Warnings
are silenced at `quiet` 1 and above, errors at `quiet` 2 and above.

Each `Check` keeps its status (`CheckStatus`) after running, so use a new
`CheckSuite` for each tree. Some checks change the tree: phandle references
are filled in with (possibly newly allocated) phandles, path references are
inserted into property values, a redundant correct `name` property is
removed, and nodes flagged `omit_if_unused` that nothing references are
deleted.

Individual check functions live in `dtcheck.structural`,
`dtcheck.semantic`, `dtcheck.buses`, `dtcheck.providers` and
`dtcheck.graph`; each takes `(check, dti, node)`. `dtcheck.checkrun`
defines `Check`, `CheckStatus` and `is_multiple_of`.

## What this package does not do

`dtcheck` works only on trees built in Python. It does not parse device tree
source files, does not read or write flattened (binary) device tree blobs,
does not apply overlays, and has no command-line program.