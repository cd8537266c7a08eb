import pytest

from dtcheck.checkrun import Check, CheckStatus
from dtcheck.data import Data, MarkerType
from dtcheck.providers import (
    Provider,
    check_deprecated_gpio_property,
    check_gpios_property,
    check_interrupt_map,
    check_interrupt_provider,
    check_interrupts_property,
    check_property_phandle_args,
    check_provider_cells_property,
    node_is_interrupt_provider,
    prop_is_gpio,
)
from dtcheck.tree import DTSF_PLUGIN, DtInfo, Node, Property


def cells(name, *values):
    d = Data()
    for v in values:
        d.append_cell(v)
    return Property(name, d)


def make_check(fn, data=None):
    return Check("test", fn, data, warn=True)


def provider_node(name, phandle, *props):
    node = Node(name, properties=props)
    node.phandle = phandle
    return node


def clocks_tree(clocks_prop, clock_cells=1):
    props = [] if clock_cells is None else [cells("#clock-cells", clock_cells)]
    clk = provider_node("clk", 1, *props)
    dev = Node("dev", properties=[clocks_prop])
    root = Node("", children=[clk, dev])
    return DtInfo(root)


CLOCKS = Provider("clocks", "#clock-cells")


def test_clocks_valid_passes():
    dti = clocks_tree(cells("clocks", 1, 5))
    check = make_check(check_provider_cells_property, CLOCKS)
    assert check.run(dti) is False
    assert check.status is CheckStatus.PASSED


def test_clocks_too_small():
    dti = clocks_tree(cells("clocks", 1))
    check = make_check(check_provider_cells_property, CLOCKS)
    check.run(dti)
    assert check.status is CheckStatus.FAILED
    assert "too small for cell size 1" in check.messages[0]


def test_clocks_missing_cells_property():
    dti = clocks_tree(cells("clocks", 1), clock_cells=None)
    check = make_check(check_provider_cells_property, CLOCKS)
    check.run(dti)
    assert "Missing property '#clock-cells' in node /clk" in check.messages[0]


def test_optional_provider_without_cells_passes():
    dti = clocks_tree(cells("msi-parent", 1), clock_cells=None)
    check = make_check(
        check_provider_cells_property, Provider("msi-parent", "#msi-cells", True)
    )
    check.run(dti)
    assert check.status is CheckStatus.PASSED


def test_bad_length():
    dti = clocks_tree(Property("clocks", Data.from_bytes(b"\0\0\0\1\0")))
    check = make_check(check_provider_cells_property, CLOCKS)
    check.run(dti)
    assert "expected multiple of 4" in check.messages[0]


def test_unknown_phandle():
    dti = clocks_tree(cells("clocks", 9, 0))
    check = make_check(check_provider_cells_property, CLOCKS)
    check.run(dti)
    assert "Could not get phandle node for (cell 0)" in check.messages[0]


def test_invalid_phandle_entries_are_skipped():
    dti = clocks_tree(cells("clocks", 0, 1, 5))
    check = make_check(check_provider_cells_property, CLOCKS)
    check.run(dti)
    assert check.status is CheckStatus.PASSED


def test_marker_not_phandle_reference():
    val = Data().add_marker(MarkerType.TYPE_UINT32).append_cell(1).append_cell(5)
    dti = clocks_tree(Property("clocks", val))
    check = make_check(check_provider_cells_property, CLOCKS)
    check.run(dti)
    assert "cell 0 is not a phandle reference" in check.messages[0]


def test_marker_phandle_reference_passes():
    val = Data().add_marker(MarkerType.REF_PHANDLE, "clk").append_cell(1).append_cell(5)
    dti = clocks_tree(Property("clocks", val))
    check = make_check(check_provider_cells_property, CLOCKS)
    check.run(dti)
    assert check.status is CheckStatus.PASSED


def test_property_phandle_args_direct():
    prop = cells("clocks", 1)
    dti = clocks_tree(prop)
    check = make_check(None)
    check_property_phandle_args(check, dti, dti.dt.children[1], prop, CLOCKS)
    assert check.status is CheckStatus.FAILED


@pytest.mark.parametrize(
    "name,expected",
    [
        ("gpios", True),
        ("gpio", True),
        ("reset-gpios", True),
        ("enable-gpio", True),
        ("ti,nr-gpios", False),
        ("clocks", False),
    ],
)
def test_prop_is_gpio(name, expected):
    assert prop_is_gpio(Property(name)) is expected


def test_deprecated_gpio_property():
    dev = Node("dev", properties=[cells("enable-gpio", 1), cells("reset-gpios", 1)])
    dti = DtInfo(Node("", children=[dev]))
    check = make_check(check_deprecated_gpio_property)
    check.run(dti)
    assert len(check.messages) == 1
    assert "enable-gpio" in check.messages[0]


def test_gpios_property_checks_gpio_cells():
    ctrl = provider_node("gpio", 1, cells("#gpio-cells", 2))
    dev = Node("dev", properties=[cells("reset-gpios", 1, 3)])
    dti = DtInfo(Node("", children=[ctrl, dev]))
    check = make_check(check_gpios_property)
    check.run(dti)
    assert "too small for cell size 2" in check.messages[0]


def test_gpios_property_skips_hog():
    ctrl = provider_node("gpio", 1, cells("#gpio-cells", 2))
    hog = Node("hog", properties=[Property("gpio-hog"), cells("gpios", 1, 3)])
    dti = DtInfo(Node("", children=[ctrl, hog]))
    check = make_check(check_gpios_property)
    check.run(dti)
    assert check.status is CheckStatus.PASSED


def test_node_is_interrupt_provider():
    assert node_is_interrupt_provider(Node("a", properties=[Property("interrupt-map")]))
    assert not node_is_interrupt_provider(Node("a"))


def test_interrupt_provider_missing_cells():
    intc = Node("intc", properties=[Property("interrupt-controller")])
    dti = DtInfo(Node("", children=[intc]))
    check = make_check(check_interrupt_provider)
    check.run(dti)
    assert "Missing '#interrupt-cells' in interrupt provider" in check.messages[0]


def test_interrupt_cells_without_provider():
    dev = Node("dev", properties=[cells("#interrupt-cells", 2)])
    dti = DtInfo(Node("", children=[dev]))
    check = make_check(check_interrupt_provider)
    check.run(dti)
    assert "but node is not an interrupt provider" in check.messages[0]


def test_interrupt_provider_complete_passes():
    intc = Node(
        "intc", properties=[Property("interrupt-controller"), cells("#interrupt-cells", 2)]
    )
    dti = DtInfo(Node("", children=[intc]))
    check = make_check(check_interrupt_provider)
    check.run(dti)
    assert check.status is CheckStatus.PASSED


def interrupts_tree(interrupts, parent_phandle=1):
    intc = provider_node(
        "intc", 1, Property("interrupt-controller"), cells("#interrupt-cells", 2)
    )
    dev = Node("dev", properties=[cells("interrupts", *interrupts)])
    root = Node(
        "",
        properties=[cells("interrupt-parent", parent_phandle)],
        children=[intc, dev],
    )
    return DtInfo(root)


def test_interrupts_valid_inherited_parent():
    dti = interrupts_tree([1, 2])
    check = make_check(check_interrupts_property)
    check.run(dti)
    assert check.status is CheckStatus.PASSED


def test_interrupts_wrong_multiple():
    dti = interrupts_tree([1, 2, 3])
    check = make_check(check_interrupts_property)
    check.run(dti)
    assert "size is (12), expected multiple of" in check.messages[0]


def test_interrupts_bad_phandle():
    dti = interrupts_tree([1, 2], parent_phandle=7)
    check = make_check(check_interrupts_property)
    check.run(dti)
    assert "Bad phandle" in check.messages[0]


def test_interrupts_missing_parent():
    dev = Node("dev", properties=[cells("interrupts", 1)])
    dti = DtInfo(Node("", children=[dev]))
    check = make_check(check_interrupts_property)
    check.run(dti)
    assert "Missing interrupt-parent" in check.messages[0]


def test_interrupts_invalid_phandle_in_plugin_is_ignored():
    dti = interrupts_tree([1, 2], parent_phandle=0xFFFFFFFF)
    dti.dtsflags |= DTSF_PLUGIN
    check = make_check(check_interrupts_property)
    check.run(dti)
    assert check.status is CheckStatus.PASSED


def interrupt_map_tree(map_cells, addr_cells=1, mask=None):
    intc = provider_node(
        "intc", 5, Property("interrupt-controller"), cells("#interrupt-cells", 1)
    )
    props = [cells("#interrupt-cells", 1), cells("interrupt-map", *map_cells)]
    if mask is not None:
        props.append(cells("interrupt-map-mask", *mask))
    bridge = Node("bridge", properties=props)
    bridge.addr_cells = addr_cells
    root = Node("", children=[intc, bridge])
    return DtInfo(root), bridge


def test_interrupt_map_valid():
    dti, bridge = interrupt_map_tree([0, 1, 5, 3])
    check = make_check(None)
    check_interrupt_map(check, dti, bridge)
    assert check.status is CheckStatus.UNCHECKED
    assert check.messages == []


def test_interrupt_map_truncated():
    dti, bridge = interrupt_map_tree([0, 1, 5])
    check = make_check(None)
    check_interrupt_map(check, dti, bridge)
    assert check.status is CheckStatus.FAILED
    assert "mismatch" in check.messages[0]


def test_interrupt_map_missing_address_cells():
    dti, bridge = interrupt_map_tree([0, 1, 5, 3], addr_cells=-1)
    check = make_check(None)
    check_interrupt_map(check, dti, bridge)
    assert "Missing '#address-cells' in interrupt-map provider" in check.messages[0]


def test_interrupt_map_mask_size():
    dti, bridge = interrupt_map_tree([0, 1, 5, 3], mask=[1])
    check = make_check(None)
    check_interrupt_map(check, dti, bridge)
    assert "interrupt-map-mask" in check.messages[0]
    assert "is invalid" in check.messages[0]