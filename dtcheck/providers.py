"""Checks of phandle-with-arguments properties, GPIOs and interrupts."""

from __future__ import annotations

from dataclasses import dataclass

from dtcheck.checkrun import Check, is_multiple_of
from dtcheck.data import CELL_SIZE, MarkerType
from dtcheck.tree import (
    DtInfo,
    Node,
    Property,
    get_node_by_phandle,
    node_addr_cells,
    phandle_is_valid,
    propval_cell,
    propval_cell_n,
)


@dataclass(frozen=True)
class Provider:
    """A consumer property and the provider property giving its argument count."""

    prop_name: str
    cell_name: str
    optional: bool = False


def _signed32(value: int) -> int:
    return value - (1 << 32) if value & 0x80000000 else value


def check_property_phandle_args(
    check: Check, dti: DtInfo, node: Node, prop: Property, provider: Provider
) -> None:
    """Walk a list of (phandle, args...) entries and verify each against its provider."""
    length = len(prop.val)
    if not is_multiple_of(length, CELL_SIZE):
        check.fail(
            dti,
            node,
            f"property size ({length}) is invalid, expected multiple of {CELL_SIZE}",
            prop,
        )
        return

    ncells = length // CELL_SIZE
    cell = 0
    while cell < ncells:
        phandle = propval_cell_n(prop, cell)
        # Some bindings use 0 or -1 to skip optional entries.
        if not phandle_is_valid(phandle):
            if dti.plugin:
                break
            cell += 1
            continue

        if prop.val.markers and not any(
            m.offset == cell * CELL_SIZE
            for m in prop.val.markers_of_type(MarkerType.REF_PHANDLE)
        ):
            check.fail(dti, node, f"cell {cell} is not a phandle reference", prop)

        provider_node = get_node_by_phandle(dti.dt, phandle)
        if provider_node is None:
            check.fail(
                dti, node, f"Could not get phandle node for (cell {cell})", prop
            )
            break

        cellprop = provider_node.get_property(provider.cell_name)
        if cellprop is not None:
            cellsize = propval_cell(cellprop)
        elif provider.optional:
            cellsize = 0
        else:
            check.fail(
                dti,
                node,
                f"Missing property '{provider.cell_name}' in node "
                f"{provider_node.fullpath} or bad phandle (referred from "
                f"{prop.name}[{cell}])",
            )
            break

        expected = (cell + cellsize + 1) * CELL_SIZE
        if length < expected:
            check.fail(
                dti,
                node,
                f"property size ({length}) too small for cell size {cellsize}",
                prop,
            )
            break

        cell += cellsize + 1


def check_provider_cells_property(check: Check, dti: DtInfo, node: Node) -> None:
    """Check the property described by the Provider in ``check.data``."""
    provider: Provider = check.data
    prop = node.get_property(provider.prop_name)
    if prop is None:
        return
    check_property_phandle_args(check, dti, node, prop, provider)


def prop_is_gpio(prop: Property) -> bool:
    """True for gpio, gpios, *-gpio and *-gpios properties (but not *,nr-gpios)."""
    name = prop.name
    if name.endswith(",nr-gpios"):
        return False
    return (
        name.endswith("-gpios")
        or name == "gpios"
        or name.endswith("-gpio")
        or name == "gpio"
    )


def check_gpios_property(check: Check, dti: DtInfo, node: Node) -> None:
    """GPIO properties must be well-formed phandle/argument lists."""
    if node.get_property("gpio-hog") is not None:
        return
    for prop in node.properties:
        if not prop_is_gpio(prop):
            continue
        provider = Provider(prop.name, "#gpio-cells", False)
        check_property_phandle_args(check, dti, node, prop, provider)


def check_deprecated_gpio_property(check: Check, dti: DtInfo, node: Node) -> None:
    """The singular gpio form of GPIO properties is deprecated."""
    for prop in node.properties:
        if not prop_is_gpio(prop):
            continue
        if not prop.name.endswith("gpio"):
            continue
        check.fail(
            dti, node, "'[*-]gpio' is deprecated, use '[*-]gpios' instead", prop
        )


def node_is_interrupt_provider(node: Node) -> bool:
    """True if the node has interrupt-controller or interrupt-map."""
    return (
        node.get_property("interrupt-controller") is not None
        or node.get_property("interrupt-map") is not None
    )


def check_interrupt_provider(check: Check, dti: DtInfo, node: Node) -> None:
    """Interrupt providers, and only they, carry #interrupt-cells."""
    irq_provider = node_is_interrupt_provider(node)
    prop = node.get_property("#interrupt-cells")

    if irq_provider and prop is None:
        check.fail(dti, node, "Missing '#interrupt-cells' in interrupt provider")
        return

    if not irq_provider and prop is not None:
        check.fail(
            dti,
            node,
            "'#interrupt-cells' found, but node is not an interrupt provider",
        )


def check_interrupt_map(check: Check, dti: DtInfo, node: Node) -> None:
    """An interrupt-map must be made of whole entries pointing to real providers."""
    irq_map_prop = node.get_property("interrupt-map")
    if irq_map_prop is None:
        return

    if node.addr_cells < 0:
        check.fail(dti, node, "Missing '#address-cells' in interrupt-map provider")
        return

    irq_cells_prop = node.get_property("#interrupt-cells")
    if irq_cells_prop is None:
        # Reported by the interrupt_provider check.
        return
    cellsize = node_addr_cells(node) + propval_cell(irq_cells_prop)

    prop = node.get_property("interrupt-map-mask")
    if prop is not None and len(prop.val) != cellsize * CELL_SIZE:
        check.fail(
            dti,
            node,
            f"property size ({len(prop.val)}) is invalid, expected "
            f"{cellsize * CELL_SIZE}",
            prop,
        )

    length = len(irq_map_prop.val)
    if not is_multiple_of(length, CELL_SIZE):
        check.fail(
            dti,
            node,
            f"property size ({length}) is invalid, expected multiple of {CELL_SIZE}",
            irq_map_prop,
        )
        return

    map_cells = length // CELL_SIZE
    cell = 0
    while cell < map_cells:
        if cell + cellsize >= map_cells:
            check.fail(
                dti,
                node,
                f"property size ({length}) too small, expected > "
                f"{(cell + cellsize) * CELL_SIZE}",
                irq_map_prop,
            )
            break
        cell += cellsize

        phandle = propval_cell_n(irq_map_prop, cell)
        if not phandle_is_valid(phandle):
            if not dti.plugin:
                check.fail(
                    dti,
                    node,
                    f"Cell {cell} is not a phandle({_signed32(phandle)})",
                    irq_map_prop,
                )
            break

        provider_node = get_node_by_phandle(dti.dt, phandle)
        if provider_node is None:
            check.fail(
                dti,
                node,
                f"Could not get phandle({_signed32(phandle)}) node for (cell {cell})",
                irq_map_prop,
            )
            break

        cellprop = provider_node.get_property("#interrupt-cells")
        if cellprop is None:
            check.fail(
                dti,
                node,
                "Missing property '#interrupt-cells' in node "
                f"{provider_node.fullpath} or bad phandle (referred from "
                f"interrupt-map[{cell}])",
            )
            break
        parent_cellsize = propval_cell(cellprop)

        cellprop = provider_node.get_property("#address-cells")
        if cellprop is not None:
            parent_cellsize += propval_cell(cellprop)

        cell += 1 + parent_cellsize
        if cell > map_cells:
            check.fail(
                dti,
                node,
                f"property size ({length}) mismatch, expected {cell * CELL_SIZE}",
                irq_map_prop,
            )


def check_interrupts_property(check: Check, dti: DtInfo, node: Node) -> None:
    """An interrupts property needs a reachable interrupt parent and whole entries."""
    irq_prop = node.get_property("interrupts")
    if irq_prop is None:
        return

    length = len(irq_prop.val)
    if not is_multiple_of(length, CELL_SIZE):
        check.fail(
            dti,
            node,
            f"size ({length}) is invalid, expected multiple of {CELL_SIZE}",
            irq_prop,
        )

    irq_node: Node | None = None
    parent: Node | None = node
    prop: Property | None = None
    while parent is not None and prop is None:
        if parent is not node and node_is_interrupt_provider(parent):
            irq_node = parent
            break

        prop = parent.get_property("interrupt-parent")
        if prop is not None:
            phandle = propval_cell(prop)
            if not phandle_is_valid(phandle):
                if dti.plugin:
                    return
                check.fail(dti, parent, "Invalid phandle", prop)
                continue

            irq_node = get_node_by_phandle(dti.dt, phandle)
            if irq_node is None:
                check.fail(dti, parent, "Bad phandle", prop)
                return
            if not node_is_interrupt_provider(irq_node):
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
        return

    irq_cells = propval_cell(prop)
    if not is_multiple_of(length, irq_cells * CELL_SIZE):
        check.fail(
            dti,
            node,
            f"size is ({length}), expected multiple of {irq_cells * CELL_SIZE}",
            prop,
        )