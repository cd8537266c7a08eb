"""Semantic and style checks: addressing, aliases and the /chosen node."""

from __future__ import annotations

import string

from dtcheck.checkrun import Check, is_multiple_of
from dtcheck.data import CELL_SIZE
from dtcheck.structural import check_is_string, check_is_string_list
from dtcheck.tree import (
    DtInfo,
    Node,
    get_node_by_path,
    node_addr_cells,
    node_size_cells,
    propval_cell,
)

_ALIAS_NAME_CHARS = frozenset(string.ascii_lowercase + string.digits + "-")
_HEXDIGITS = frozenset(string.hexdigits)


def _cstring(raw: bytes | bytearray) -> str:
    return bytes(raw).split(b"\0", 1)[0].decode("utf-8", errors="replace")


def check_names_is_string_list(check: Check, dti: DtInfo, node: Node) -> None:
    """Every "*-names" property must be a list of strings."""
    for prop in node.properties:
        if not prop.name.endswith("-names"):
            continue
        check.data = prop.name
        check_is_string_list(check, dti, node)


def check_alias_paths(check: Check, dti: DtInfo, node: Node) -> None:
    """Properties of /aliases must name existing nodes and use lowercase names."""
    if node.name != "aliases":
        return

    for prop in node.properties:
        if prop.name in ("phandle", "linux,phandle"):
            continue

        if not len(prop.val) or get_node_by_path(dti.dt, _cstring(prop.val.val)) is None:
            shown = _cstring(prop.val.val) if len(prop.val) else "(null)"
            check.fail(
                dti, node, f"aliases property is not a valid node ({shown})", prop
            )
            continue
        if any(ch not in _ALIAS_NAME_CHARS for ch in prop.name):
            check.fail(
                dti, node, "aliases property name must include only lowercase and '-'"
            )


def fixup_addr_size_cells(check: Check, dti: DtInfo, node: Node) -> None:
    """Record #address-cells and #size-cells on the node (-1 when absent)."""
    node.addr_cells = -1
    node.size_cells = -1

    prop = node.get_property("#address-cells")
    if prop is not None:
        node.addr_cells = propval_cell(prop)

    prop = node.get_property("#size-cells")
    if prop is not None:
        node.size_cells = propval_cell(prop)


def check_reg_format(check: Check, dti: DtInfo, node: Node) -> None:
    """A "reg" property must be whole address/size entries of the parent bus."""
    prop = node.get_property("reg")
    if prop is None:
        return

    if node.parent is None:
        check.fail(dti, node, 'Root node has a "reg" property')
        return

    if not len(prop.val):
        check.fail(dti, node, "property is empty", prop)

    addr_cells = node_addr_cells(node.parent)
    size_cells = node_size_cells(node.parent)
    entrylen = (addr_cells + size_cells) * CELL_SIZE

    if not is_multiple_of(len(prop.val), entrylen):
        check.fail(
            dti,
            node,
            f"property has invalid length ({len(prop.val)} bytes) "
            f"(#address-cells == {addr_cells}, #size-cells == {size_cells})",
            prop,
        )


def check_ranges_format(check: Check, dti: DtInfo, node: Node) -> None:
    """The ranges-like property named by ``check.data`` must be well formed."""
    ranges = check.data
    prop = node.get_property(ranges)
    if prop is None:
        return

    if node.parent is None:
        check.fail(dti, node, f'Root node has a "{ranges}" property', prop)
        return

    p_addr_cells = node_addr_cells(node.parent)
    p_size_cells = node_size_cells(node.parent)
    c_addr_cells = node_addr_cells(node)
    c_size_cells = node_size_cells(node)
    entrylen = (p_addr_cells + c_addr_cells + c_size_cells) * CELL_SIZE
    length = len(prop.val)

    if length == 0:
        if p_addr_cells != c_addr_cells:
            check.fail(
                dti,
                node,
                f'empty "{ranges}" property but its #address-cells '
                f"({c_addr_cells}) differs from {node.parent.fullpath} "
                f"({p_addr_cells})",
                prop,
            )
        if p_size_cells != c_size_cells:
            check.fail(
                dti,
                node,
                f'empty "{ranges}" property but its #size-cells '
                f"({c_size_cells}) differs from {node.parent.fullpath} "
                f"({p_size_cells})",
                prop,
            )
    elif not is_multiple_of(length, entrylen):
        check.fail(
            dti,
            node,
            f'"{ranges}" property has invalid length ({length} bytes) '
            f"(parent #address-cells == {p_addr_cells}, child #address-cells "
            f"== {c_addr_cells}, #size-cells == {c_size_cells})",
            prop,
        )


def check_unit_address_format(check: Check, dti: DtInfo, node: Node) -> None:
    """Generic unit addresses must have no "0x" prefix and no leading zeroes."""
    unitname = node.unitname

    if node.parent is not None and node.parent.bus is not None:
        return

    if not unitname:
        return

    if unitname.startswith("0x"):
        check.fail(dti, node, 'unit name should not have leading "0x"')
        unitname = unitname[2:]
    if len(unitname) > 1 and unitname[0] == "0" and unitname[1] in _HEXDIGITS:
        check.fail(dti, node, "unit name should not have leading 0s")


def check_avoid_default_addr_size(check: Check, dti: DtInfo, node: Node) -> None:
    """Nodes with reg or ranges should not rely on default cell sizes."""
    if node.parent is None:
        return

    reg = node.get_property("reg")
    ranges = node.get_property("ranges")
    if reg is None and ranges is None:
        return

    if node.parent.addr_cells == -1:
        check.fail(dti, node, "Relying on default #address-cells value")
    if node.parent.size_cells == -1:
        check.fail(dti, node, "Relying on default #size-cells value")


def check_avoid_unnecessary_addr_size(check: Check, dti: DtInfo, node: Node) -> None:
    """Cell sizes are pointless without ranges, dma-ranges or a child reg."""
    if node.parent is None or node.addr_cells < 0 or node.size_cells < 0:
        return

    if (
        node.get_property("ranges") is not None
        or node.get_property("dma-ranges") is not None
        or not node.children
    ):
        return

    if not any(child.get_property("reg") is not None for child in node.children):
        check.fail(
            dti,
            node,
            "unnecessary #address-cells/#size-cells without \"ranges\", "
            "\"dma-ranges\" or child \"reg\" property",
        )


def _node_is_disabled(node: Node) -> bool:
    prop = node.get_property("status")
    return prop is not None and _cstring(prop.val.val) == "disabled"


def _check_unique_unit_address_common(
    check: Check, dti: DtInfo, node: Node, disable_check: bool
) -> None:
    if node.addr_cells < 0 or node.size_cells < 0:
        return

    children = node.children
    for childa in children:
        addr_a = childa.unitname
        if not addr_a:
            continue
        if disable_check and _node_is_disabled(childa):
            continue

        for childb in children:
            if childb is childa:
                break
            if disable_check and _node_is_disabled(childb):
                continue
            if childb.unitname == addr_a:
                check.fail(
                    dti,
                    childb,
                    f"duplicate unit-address (also used in node {childa.fullpath})",
                )


def check_unique_unit_address(check: Check, dti: DtInfo, node: Node) -> None:
    """Sibling nodes must not share a unit address."""
    _check_unique_unit_address_common(check, dti, node, False)


def check_unique_unit_address_if_enabled(check: Check, dti: DtInfo, node: Node) -> None:
    """Enabled sibling nodes must not share a unit address."""
    _check_unique_unit_address_common(check, dti, node, True)


def check_obsolete_chosen_interrupt_controller(
    check: Check, dti: DtInfo, node: Node
) -> None:
    """/chosen must not carry an "interrupt-controller" property."""
    dt = dti.dt
    if node is not dt:
        return

    chosen = get_node_by_path(dt, "/chosen")
    if chosen is None:
        return

    prop = chosen.get_property("interrupt-controller")
    if prop is not None:
        check.fail(
            dti,
            node,
            '/chosen has obsolete "interrupt-controller" property',
            prop,
        )


def check_chosen_node_is_root(check: Check, dti: DtInfo, node: Node) -> None:
    """The chosen node must sit directly under the root."""
    if node.name != "chosen":
        return
    if node.parent is not dti.dt:
        check.fail(dti, node, "chosen node must be at root node")


def check_chosen_node_bootargs(check: Check, dti: DtInfo, node: Node) -> None:
    """/chosen/bootargs must be a string."""
    if node.name != "chosen":
        return
    prop = node.get_property("bootargs")
    if prop is None:
        return
    check.data = prop.name
    check_is_string(check, dti, node)


def check_chosen_node_stdout_path(check: Check, dti: DtInfo, node: Node) -> None:
    """/chosen/stdout-path must be a string; the linux, prefixed form is obsolete."""
    if node.name != "chosen":
        return

    prop = node.get_property("stdout-path")
    if prop is None:
        prop = node.get_property("linux,stdout-path")
        if prop is None:
            return
        check.fail(dti, node, "Use 'stdout-path' instead", prop)

    check.data = prop.name
    check_is_string(check, dti, node)