"""Bus detection and unit-address checks for PCI, simple-bus, I2C and SPI."""

from __future__ import annotations

from dtcheck.checkrun import Check
from dtcheck.data import CELL_SIZE
from dtcheck.tree import (
    BusType,
    DtInfo,
    Node,
    Property,
    node_addr_cells,
    node_size_cells,
)

PCI_BUS = BusType("PCI")
SIMPLE_BUS = BusType("simple-bus")
I2C_BUS = BusType("i2c-bus")
SPI_BUS = BusType("spi-bus")

I2C_OWN_SLAVE_ADDRESS = 1 << 30
I2C_TEN_BIT_ADDRESS = 1 << 31

_U64_MASK = (1 << 64) - 1


def _cstring(raw: bytes | bytearray) -> str:
    return bytes(raw).split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _cell(prop: Property, n: int) -> int:
    """The n-th big-endian cell of a value; bytes past the end read as zero."""
    start = n * CELL_SIZE
    raw = bytes(prop.val.val[start:start + CELL_SIZE])
    return int.from_bytes(raw.ljust(CELL_SIZE, b"\0"), "big")


def _strprefixeq(name: str, n: int, prefix: str) -> bool:
    return len(prefix) == n and name[:n] == prefix


def _basename_is(node: Node, name: str) -> bool:
    return _strprefixeq(node.name, node.basenamelen, name)


def node_is_compatible(node: Node, compat: str) -> bool:
    """True if ``compat`` is one of the node's "compatible" strings."""
    prop = node.get_property("compatible")
    if prop is None:
        return False
    raw = bytes(prop.val.val)
    if not raw:
        return False
    parts = raw.split(b"\0")
    if raw.endswith(b"\0"):
        parts.pop()
    target = compat.encode("utf-8")
    return target in parts


def check_pci_bridge(check: Check, dti: DtInfo, node: Node) -> None:
    """Mark PCI bridges and check their name, ranges, cells and bus-range."""
    prop = node.get_property("device_type")
    if prop is None or _cstring(prop.val.val) != "pci":
        return

    node.bus = PCI_BUS

    if not _basename_is(node, "pci") and not _basename_is(node, "pcie"):
        check.fail(dti, node, 'node name is not "pci" or "pcie"')

    if node.get_property("ranges") is None:
        check.fail(dti, node, "missing ranges for PCI bridge (or not a bridge)")

    if node_addr_cells(node) != 3:
        check.fail(dti, node, "incorrect #address-cells for PCI bridge")
    if node_size_cells(node) != 2:
        check.fail(dti, node, "incorrect #size-cells for PCI bridge")

    prop = node.get_property("bus-range")
    if prop is None:
        return

    if len(prop.val) != CELL_SIZE * 2:
        check.fail(dti, node, "value must be 2 cells", prop)
        return
    first, last = _cell(prop, 0), _cell(prop, 1)
    if first > last:
        check.fail(dti, node, "1st cell must be less than or equal to 2nd cell", prop)
    if last > 0xFF:
        check.fail(dti, node, "maximum bus number must be less than 256", prop)


def check_pci_device_bus_num(check: Check, dti: DtInfo, node: Node) -> None:
    """A PCI device's bus number must lie in its bridge's bus-range."""
    if node.parent is None or node.parent.bus is not PCI_BUS:
        return

    prop = node.get_property("reg")
    if prop is None:
        return

    bus_num = (_cell(prop, 0) & 0x00FF0000) >> 16

    prop = node.parent.get_property("bus-range")
    if prop is None:
        min_bus = max_bus = 0
    else:
        min_bus, max_bus = _cell(prop, 0), _cell(prop, 1)

    if bus_num < min_bus or bus_num > max_bus:
        check.fail(
            dti,
            node,
            f"PCI bus number {bus_num} out of range, expected "
            f"({min_bus} - {max_bus})",
            prop,
        )


def check_pci_device_reg(check: Check, dti: DtInfo, node: Node) -> None:
    """A PCI device's reg must be config space and match its unit address."""
    if node.parent is None or node.parent.bus is not PCI_BUS:
        return

    prop = node.get_property("reg")
    if prop is None:
        return

    if _cell(prop, 1) or _cell(prop, 2):
        check.fail(
            dti, node, "PCI reg config space address cells 2 and 3 must be 0", prop
        )

    reg = _cell(prop, 0)
    dev = (reg & 0xF800) >> 11
    func = (reg & 0x700) >> 8

    if reg & 0xFF000000:
        check.fail(dti, node, "PCI reg address is not configuration space", prop)
    if reg & 0x000000FF:
        check.fail(
            dti,
            node,
            "PCI reg config space address register number must be 0",
            prop,
        )

    unitname = node.unitname
    if func == 0 and unitname == f"{dev:x}":
        return

    unit_addr = f"{dev:x},{func:x}"
    if unitname == unit_addr:
        return

    check.fail(dti, node, f'PCI unit address format error, expected "{unit_addr}"')


def check_simple_bus_bridge(check: Check, dti: DtInfo, node: Node) -> None:
    """Mark nodes compatible with "simple-bus"."""
    if node_is_compatible(node, "simple-bus"):
        node.bus = SIMPLE_BUS


def check_simple_bus_reg(check: Check, dti: DtInfo, node: Node) -> None:
    """A simple-bus child's unit address must match its reg or ranges."""
    if node.parent is None or node.parent.bus is not SIMPLE_BUS:
        return

    prop = node.get_property("reg")
    first_cell: int | None = None
    if prop is not None:
        if len(prop.val):
            first_cell = 0
    else:
        prop = node.get_property("ranges")
        if prop is not None and len(prop.val):
            # skip over the child address
            first_cell = node_addr_cells(node)

    if first_cell is None:
        if node.parent.parent is not None and node.bus is not SIMPLE_BUS:
            check.fail(dti, node, "missing or empty reg/ranges property")
        return

    reg = 0
    for i in range(node_addr_cells(node.parent)):
        reg = ((reg << 32) | _cell(prop, first_cell + i)) & _U64_MASK

    unit_addr = f"{reg:x}"
    if node.unitname != unit_addr:
        check.fail(
            dti, node, f'simple-bus unit address format error, expected "{unit_addr}"'
        )


def check_i2c_bus_bridge(check: Check, dti: DtInfo, node: Node) -> None:
    """Mark I2C buses by name and check their cell sizes."""
    if _basename_is(node, "i2c-bus") or _basename_is(node, "i2c-arb"):
        node.bus = I2C_BUS
    elif _basename_is(node, "i2c"):
        for child in node.children:
            if _strprefixeq(child.name, node.basenamelen, "i2c-bus"):
                return
        node.bus = I2C_BUS
    else:
        return

    if not node.children:
        return

    if node_addr_cells(node) != 1:
        check.fail(dti, node, "incorrect #address-cells for I2C bus")
    if node_size_cells(node) != 0:
        check.fail(dti, node, "incorrect #size-cells for I2C bus")


def check_i2c_bus_reg(check: Check, dti: DtInfo, node: Node) -> None:
    """An I2C device's reg must match its unit address and fit 7 or 10 bits."""
    if node.parent is None or node.parent.bus is not I2C_BUS:
        return

    prop = node.get_property("reg")
    if prop is None or not len(prop.val):
        check.fail(dti, node, "missing or empty reg property")
        return

    reg = _cell(prop, 0) & ~I2C_OWN_SLAVE_ADDRESS
    unit_addr = f"{reg:x}"
    if node.unitname != unit_addr:
        check.fail(
            dti, node, f'I2C bus unit address format error, expected "{unit_addr}"'
        )

    ncells = (len(prop.val) + CELL_SIZE - 1) // CELL_SIZE
    for n in range(ncells):
        reg = _cell(prop, n) & ~I2C_OWN_SLAVE_ADDRESS
        if reg & I2C_TEN_BIT_ADDRESS:
            if (reg & ~I2C_TEN_BIT_ADDRESS) > 0x3FF:
                check.fail(
                    dti,
                    node,
                    f'I2C address must be less than 10-bits, got "0x{reg:x}"',
                    prop,
                )
        elif reg > 0x7F:
            check.fail(
                dti,
                node,
                f'I2C address must be less than 7-bits, got "0x{reg:x}". Set '
                "I2C_TEN_BIT_ADDRESS for 10 bit addresses or fix the property",
                prop,
            )


def check_spi_bus_bridge(check: Check, dti: DtInfo, node: Node) -> None:
    """Mark SPI buses by name or by their children's spi-* properties."""
    spi_addr_cells = 1

    if _basename_is(node, "spi"):
        node.bus = SPI_BUS
    else:
        if node_addr_cells(node) != 1 or node_size_cells(node) != 0:
            return

        if any(
            prop.name.startswith("spi-")
            for child in node.children
            for prop in child.properties
        ):
            node.bus = SPI_BUS

        if node.bus is SPI_BUS and node.get_property("reg") is not None:
            check.fail(dti, node, "node name for SPI buses should be 'spi'")

    if node.bus is not SPI_BUS or not node.children:
        return

    if node.get_property("spi-slave") is not None:
        spi_addr_cells = 0
    if node_addr_cells(node) != spi_addr_cells:
        check.fail(dti, node, "incorrect #address-cells for SPI bus")
    if node_size_cells(node) != 0:
        check.fail(dti, node, "incorrect #size-cells for SPI bus")


def check_spi_bus_reg(check: Check, dti: DtInfo, node: Node) -> None:
    """An SPI device's unit address must match its chip select in reg."""
    if node.parent is None or node.parent.bus is not SPI_BUS:
        return

    if node.parent.get_property("spi-slave") is not None:
        return

    prop = node.get_property("reg")
    if prop is None or not len(prop.val):
        check.fail(dti, node, "missing or empty reg property")
        return

    unit_addr = f"{_cell(prop, 0):x}"
    if node.unitname != unit_addr:
        check.fail(
            dti, node, f'SPI bus unit address format error, expected "{unit_addr}"'
        )