"""Structural checks and reference fixups on a live tree."""

from __future__ import annotations

import string

from dtcheck.checkrun import Check
from dtcheck.data import CELL_SIZE, Marker, MarkerType
from dtcheck.tree import (
    DtInfo,
    Node,
    Property,
    get_marker_label,
    get_node_by_label,
    get_node_by_phandle,
    get_node_by_ref,
    get_node_phandle,
    get_property_by_label,
    phandle_is_valid,
    propval_cell,
)

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
DIGITS = string.digits
NODECHARS = LOWERCASE + UPPERCASE + DIGITS + ",._+-@"
PROPCHARS = LOWERCASE + UPPERCASE + DIGITS + ",._+*#?-"
PROPNODECHARSSTRICT = LOWERCASE + UPPERCASE + DIGITS + ",-"


def _span(text: str, allowed: str) -> int:
    """Length of the leading run of ``text`` made of ``allowed`` characters."""
    return next((i for i, ch in enumerate(text) if ch not in allowed), len(text))


def _cstring(raw: bytes | bytearray) -> str:
    return bytes(raw).split(b"\0", 1)[0].decode("utf-8", errors="replace")


def check_always_fail(check: Check, dti: DtInfo, node: Node) -> None:
    """Fail on every node; for testing."""
    check.fail(dti, node, "always_fail check")


def check_is_string(check: Check, dti: DtInfo, node: Node) -> None:
    """The property named by ``check.data``, if present, must be one string."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    if not prop.val.is_one_string():
        check.fail(dti, node, "property is not a string", prop)


def check_is_string_list(check: Check, dti: DtInfo, node: Node) -> None:
    """The property named by ``check.data``, if present, must be NUL-terminated strings."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    raw = prop.val.val
    pos = 0
    while pos < len(raw):
        end = raw.find(0, pos)
        if end < 0:
            check.fail(dti, node, "property is not a string list", prop)
            break
        pos = end + 1


def check_is_cell(check: Check, dti: DtInfo, node: Node) -> None:
    """The property named by ``check.data``, if present, must be one cell."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    if len(prop.val) != CELL_SIZE:
        check.fail(dti, node, "property is not a single cell", prop)


def check_duplicate_node_names(check: Check, dti: DtInfo, node: Node) -> None:
    """No two children of a node may share a name."""
    children = node.children
    for i, child in enumerate(children):
        for child2 in children[i + 1:]:
            if child.name == child2.name:
                check.fail(dti, child2, "Duplicate node name")


def check_duplicate_property_names(check: Check, dti: DtInfo, node: Node) -> None:
    """No two properties of a node may share a name."""
    props = node.properties
    for i, prop in enumerate(props):
        for prop2 in props[i + 1:]:
            if prop.name == prop2.name:
                check.fail(dti, node, "Duplicate property name", prop)


def check_node_name_chars(check: Check, dti: DtInfo, node: Node) -> None:
    """Node names may use only the characters in ``check.data``."""
    n = _span(node.name, check.data)
    if n < len(node.name):
        check.fail(dti, node, f"Bad character '{node.name[n]}' in node name")


def check_node_name_chars_strict(check: Check, dti: DtInfo, node: Node) -> None:
    """Node base names should use only the recommended characters."""
    n = _span(node.name, check.data)
    if n < node.basenamelen:
        check.fail(
            dti, node, f"Character '{node.name[n]}' not recommended in node name"
        )


def check_node_name_format(check: Check, dti: DtInfo, node: Node) -> None:
    """A node name may hold at most one '@'."""
    if "@" in node.unitname:
        check.fail(dti, node, "multiple '@' characters in node name")


def check_node_name_vs_property_name(check: Check, dti: DtInfo, node: Node) -> None:
    """A node's name must not equal the name of a property of its parent."""
    if node.parent is None:
        return
    if node.parent.get_property(node.name) is not None:
        check.fail(dti, node, "node name and property name conflict")


def check_unit_address_vs_reg(check: Check, dti: DtInfo, node: Node) -> None:
    """A unit address goes together with a reg or non-empty ranges property."""
    unitname = node.unitname
    prop = node.get_property("reg")

    if node.get_subnode("__overlay__") is not None:
        return

    if prop is None:
        prop = node.get_property("ranges")
        if prop is not None and not len(prop.val):
            prop = None

    if prop is not None:
        if not unitname:
            check.fail(
                dti, node, "node has a reg or ranges property, but no unit name"
            )
    elif unitname:
        check.fail(dti, node, "node has a unit name, but no reg or ranges property")


def check_property_name_chars(check: Check, dti: DtInfo, node: Node) -> None:
    """Property names may use only the characters in ``check.data``."""
    for prop in node.properties:
        n = _span(prop.name, check.data)
        if n < len(prop.name):
            check.fail(
                dti, node, f"Bad character '{prop.name[n]}' in property name", prop
            )


def check_property_name_chars_strict(check: Check, dti: DtInfo, node: Node) -> None:
    """Property names should use only the recommended characters."""
    for prop in node.properties:
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


def _describe_label(node: Node, prop: Property | None, mark: Marker | None) -> str:
    text = "value of " if mark is not None else ""
    if prop is not None:
        text += f"'{prop.name}' in "
    return text + node.fullpath


def _check_duplicate_label(
    check: Check,
    dti: DtInfo,
    label: str,
    node: Node,
    prop: Property | None,
    mark: Marker | None,
) -> None:
    dt = dti.dt
    otherprop = None
    othermark = None

    othernode = get_node_by_label(dt, label)
    if othernode is None:
        found = get_property_by_label(dt, label)
        if found is not None:
            othernode, otherprop = found
    if othernode is None:
        found_mark = get_marker_label(dt, label)
        if found_mark is not None:
            othernode, otherprop, othermark = found_mark

    if othernode is None:
        return

    if othernode is not node or otherprop is not prop or othermark is not mark:
        check.fail(
            dti,
            node,
            f"Duplicate label '{label}' on {_describe_label(node, prop, mark)}"
            f" and {_describe_label(othernode, otherprop, othermark)}",
        )


def check_duplicate_label_node(check: Check, dti: DtInfo, node: Node) -> None:
    """Every label in the tree must be unique."""
    for lab in node.live_labels:
        _check_duplicate_label(check, dti, lab.label, node, None, None)

    for prop in node.properties:
        for lab in prop.live_labels():
            _check_duplicate_label(check, dti, lab.label, node, prop, None)
        for mark in prop.val.markers_of_type(MarkerType.LABEL):
            _check_duplicate_label(check, dti, mark.ref, node, prop, mark)


def _check_phandle_prop(check: Check, dti: DtInfo, node: Node, propname: str) -> int:
    prop = node.get_property(propname)
    if prop is None:
        return 0

    if len(prop.val) != CELL_SIZE:
        check.fail(
            dti, node, f"bad length ({len(prop.val)}) {prop.name} property", prop
        )
        return 0

    for mark in prop.val.markers_of_type(MarkerType.REF_PHANDLE):
        if node is not get_node_by_ref(dti.dt, mark.ref):
            # Setting a node's phandle to another node's makes no sense.
            check.fail(dti, node, f"{prop.name} is a reference to another node")
        # A self reference asks for a phandle to be allocated later.
        return 0

    phandle = propval_cell(prop)
    if not phandle_is_valid(phandle):
        check.fail(
            dti, node, f"bad value (0x{phandle:x}) in {prop.name} property", prop
        )
        return 0

    return phandle


def check_explicit_phandles(check: Check, dti: DtInfo, node: Node) -> None:
    """Validate explicit phandle properties and record them on the node."""
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


def check_name_properties(check: Check, dti: DtInfo, node: Node) -> None:
    """A "name" property must match the base name; a matching one is removed."""
    prop = next((p for p in node.proplist if p.name == "name"), None)
    if prop is None:
        return

    basename = node.name[:node.basenamelen].encode("utf-8")
    raw = prop.val.val
    if len(raw) != len(basename) + 1 or bytes(raw[:len(basename)]) != basename:
        check.fail(
            dti,
            node,
            f'"name" property is incorrect ("{_cstring(raw)}" instead'
            " of base node name)",
        )
    else:
        node.proplist.remove(prop)


def fixup_phandle_references(check: Check, dti: DtInfo, node: Node) -> None:
    """Fill in phandle references with the target nodes' phandles."""
    dt = dti.dt
    for prop in node.properties:
        for mark in prop.val.markers_of_type(MarkerType.REF_PHANDLE):
            if mark.offset + CELL_SIZE > len(prop.val):
                raise ValueError(
                    f"phandle reference at offset {mark.offset} outside "
                    f"property {prop.name!r}"
                )
            span = slice(mark.offset, mark.offset + CELL_SIZE)

            refnode = get_node_by_ref(dt, mark.ref)
            if refnode is None:
                if not dti.plugin:
                    check.fail(
                        dti,
                        node,
                        "Reference to non-existent node or "
                        f'label "{mark.ref}"\n',
                    )
                else:
                    prop.val.val[span] = b"\xff\xff\xff\xff"
                continue

            phandle = get_node_phandle(dt, refnode)
            prop.val.val[span] = phandle.to_bytes(CELL_SIZE, "big")
            refnode.is_referenced = True


def fixup_path_references(check: Check, dti: DtInfo, node: Node) -> None:
    """Insert the full paths of referenced nodes into property values."""
    dt = dti.dt
    for prop in node.properties:
        for mark in list(prop.val.markers_of_type(MarkerType.REF_PATH)):
            if mark.offset > len(prop.val):
                raise ValueError(
                    f"path reference at offset {mark.offset} outside "
                    f"property {prop.name!r}"
                )
            refnode = get_node_by_ref(dt, mark.ref)
            if refnode is None:
                check.fail(
                    dti,
                    node,
                    f'Reference to non-existent node or label "{mark.ref}"\n',
                )
                continue

            path = refnode.fullpath.encode("utf-8") + b"\0"
            prop.val.insert_at_marker(mark, path)
            refnode.is_referenced = True


def fixup_omit_unused_nodes(check: Check, dti: DtInfo, node: Node) -> None:
    """Delete nodes marked omit-if-unused that nothing references."""
    if dti.generate_symbols and node.live_labels:
        return
    if node.omit_if_unused and not node.is_referenced:
        node.delete()