"""Checks of the port/endpoint graph binding."""

from __future__ import annotations

from dtcheck.checkrun import Check
from dtcheck.data import CELL_SIZE
from dtcheck.tree import (
    BusType,
    DtInfo,
    Node,
    get_node_by_phandle,
    phandle_is_valid,
    propval_cell,
)

GRAPH_PORT_BUS = BusType("graph-port")
GRAPH_PORTS_BUS = BusType("graph-ports")


def _basename_is(node: Node, name: str) -> bool:
    return node.basenamelen == len(name) and node.name[:node.basenamelen] == name


def check_graph_nodes(check: Check, dti: DtInfo, node: Node) -> None:
    """Mark nodes holding endpoints as ports, and their 'ports' parents."""
    for child in node.children:
        if not (
            _basename_is(child, "endpoint")
            or child.get_property("remote-endpoint") is not None
        ):
            continue

        if node.parent is None:
            check.fail(
                dti,
                node,
                f"root node contains endpoint node '{child.name}', potentially "
                "misplaced remote-endpoint property",
            )
            continue
        node.bus = GRAPH_PORT_BUS

        # The parent of a port is either a 'ports' node or a device.
        if node.parent.bus is None and (
            node.parent.name == "ports" or node.get_property("reg") is not None
        ):
            node.parent.bus = GRAPH_PORTS_BUS
        break


def _check_graph_reg(check: Check, dti: DtInfo, node: Node) -> None:
    prop = node.get_property("reg")
    if prop is None:
        return

    if len(prop.val) != CELL_SIZE:
        check.fail(dti, node, "graph node malformed 'reg' property")
        return

    unit_addr = f"{propval_cell(prop):x}"
    if node.unitname != unit_addr:
        check.fail(
            dti, node, f'graph node unit address error, expected "{unit_addr}"'
        )

    if node.parent.addr_cells != 1:
        check.fail(
            dti,
            node,
            f"graph node '#address-cells' is {node.parent.addr_cells}, must be 1",
            node.get_property("#address-cells"),
        )
    if node.parent.size_cells != 0:
        check.fail(
            dti,
            node,
            f"graph node '#size-cells' is {node.parent.size_cells}, must be 0",
            node.get_property("#size-cells"),
        )


def check_graph_port(check: Check, dti: DtInfo, node: Node) -> None:
    """Port nodes must be named 'port' and have a matching reg."""
    if node.bus is not GRAPH_PORT_BUS:
        return

    _check_graph_reg(check, dti, node)

    if dti.plugin:
        return

    if not _basename_is(node, "port"):
        check.fail(dti, node, "graph port node name should be 'port'")


def _get_remote_endpoint(check: Check, dti: DtInfo, endpoint: Node) -> Node | None:
    prop = endpoint.get_property("remote-endpoint")
    if prop is None:
        return None

    phandle = propval_cell(prop)
    if not phandle_is_valid(phandle):
        return None

    node = get_node_by_phandle(dti.dt, phandle)
    if node is None:
        check.fail(dti, endpoint, "graph phandle is not valid", prop)
    return node


def check_graph_endpoint(check: Check, dti: DtInfo, node: Node) -> None:
    """Endpoints must be named 'endpoint' and link back to each other."""
    if node.parent is None or node.parent.bus is not GRAPH_PORT_BUS:
        return

    _check_graph_reg(check, dti, node)

    if dti.plugin:
        return

    if not _basename_is(node, "endpoint"):
        check.fail(dti, node, "graph endpoint node name should be 'endpoint'")

    remote_node = _get_remote_endpoint(check, dti, node)
    if remote_node is None:
        return

    if _get_remote_endpoint(check, dti, remote_node) is not node:
        check.fail(
            dti,
            node,
            f"graph connection to node '{remote_node.fullpath}' is not bidirectional",
        )


def check_graph_child_address(check: Check, dti: DtInfo, node: Node) -> None:
    """A port or ports node with one unaddressed child needs no cell sizes."""
    if node.bus is not GRAPH_PORTS_BUS and node.bus is not GRAPH_PORT_BUS:
        return

    children = node.children
    for child in children:
        prop = child.get_property("reg")
        if prop is not None and propval_cell(prop) != 0:
            return

    if len(children) == 1 and node.addr_cells != -1:
        check.fail(
            dti,
            node,
            f"graph node has single child node '{children[0].name}', "
            "#address-cells/#size-cells are not necessary",
        )