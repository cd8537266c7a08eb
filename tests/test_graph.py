from dtcheck.checkrun import Check, CheckStatus
from dtcheck.data import Data
from dtcheck.graph import (
    GRAPH_PORT_BUS,
    GRAPH_PORTS_BUS,
    check_graph_child_address,
    check_graph_endpoint,
    check_graph_nodes,
    check_graph_port,
)
from dtcheck.tree import DTSF_PLUGIN, DtInfo, Node, Property


def cells(name, *values):
    d = Data()
    for v in values:
        d.append_cell(v)
    return Property(name, d)


def make_check(fn):
    return Check("test", fn, None, warn=True)


def endpoint(name, phandle, remote):
    ep = Node(name, properties=[cells("remote-endpoint", remote)])
    ep.phandle = phandle
    return ep


def two_devices(remote_of_second=1):
    ep1 = endpoint("endpoint", 1, 2)
    ep2 = endpoint("endpoint", 2, remote_of_second)
    port1 = Node("port", children=[ep1])
    port2 = Node("port", children=[ep2])
    dev1 = Node("dev1", children=[port1])
    dev2 = Node("dev2", children=[port2])
    root = Node("", children=[dev1, dev2])
    return DtInfo(root), port1, port2


def test_graph_nodes_marks_port():
    dti, port1, port2 = two_devices()
    make_check(check_graph_nodes).run(dti)
    assert port1.bus is GRAPH_PORT_BUS
    assert port2.bus is GRAPH_PORT_BUS


def test_graph_nodes_marks_ports_parent():
    ep = Node("endpoint")
    port = Node("port@0", properties=[cells("reg", 0)], children=[ep])
    ports = Node("ports", children=[port])
    dti = DtInfo(Node("", children=[Node("dev", children=[ports])]))
    make_check(check_graph_nodes).run(dti)
    assert ports.bus is GRAPH_PORTS_BUS


def test_graph_nodes_root_endpoint_fails():
    dti = DtInfo(Node("", children=[Node("endpoint")]))
    check = make_check(check_graph_nodes)
    check.run(dti)
    assert "root node contains endpoint node 'endpoint'" in check.messages[0]


def test_graph_port_name():
    foo = Node("foo", children=[Node("endpoint")])
    foo.bus = GRAPH_PORT_BUS
    dti = DtInfo(Node("", children=[Node("dev", children=[foo])]))
    check = make_check(None)
    check_graph_port(check, dti, foo)
    assert "graph port node name should be 'port'" in check.messages[0]


def test_graph_port_name_skipped_for_plugin():
    foo = Node("foo")
    foo.bus = GRAPH_PORT_BUS
    dti = DtInfo(Node("", children=[Node("dev", children=[foo])]), dtsflags=DTSF_PLUGIN)
    check = make_check(None)
    check_graph_port(check, dti, foo)
    assert check.status is CheckStatus.UNCHECKED


def test_graph_port_reg_ok():
    port = Node("port@1", properties=[cells("reg", 1)])
    port.bus = GRAPH_PORT_BUS
    dev = Node("dev", children=[port])
    dev.addr_cells = 1
    dev.size_cells = 0
    dti = DtInfo(Node("", children=[dev]))
    check = make_check(None)
    check_graph_port(check, dti, port)
    assert check.messages == []


def test_graph_port_reg_mismatch():
    port = Node("port@2", properties=[cells("reg", 1)])
    port.bus = GRAPH_PORT_BUS
    dev = Node("dev", children=[port])
    dev.addr_cells = 1
    dev.size_cells = 0
    dti = DtInfo(Node("", children=[dev]))
    check = make_check(None)
    check_graph_port(check, dti, port)
    assert 'graph node unit address error, expected "1"' in check.messages[0]


def test_graph_port_reg_cells_wrong():
    port = Node("port@1", properties=[cells("reg", 1)])
    port.bus = GRAPH_PORT_BUS
    dev = Node("dev", children=[port])
    dti = DtInfo(Node("", children=[dev]))
    check = make_check(None)
    check_graph_port(check, dti, port)
    assert any("must be 1" in m for m in check.messages)
    assert any("must be 0" in m for m in check.messages)


def test_graph_endpoint_bidirectional_passes():
    dti, port1, port2 = two_devices()
    make_check(check_graph_nodes).run(dti)
    check = make_check(check_graph_endpoint)
    check.run(dti)
    assert check.status is CheckStatus.PASSED


def test_graph_endpoint_not_bidirectional():
    dti, port1, port2 = two_devices(remote_of_second=2)
    make_check(check_graph_nodes).run(dti)
    check = make_check(check_graph_endpoint)
    check.run(dti)
    assert any("is not bidirectional" in m for m in check.messages)


def test_graph_endpoint_invalid_phandle():
    ep = endpoint("endpoint", 1, 9)
    port = Node("port", children=[ep])
    port.bus = GRAPH_PORT_BUS
    dti = DtInfo(Node("", children=[Node("dev", children=[port])]))
    check = make_check(None)
    check_graph_endpoint(check, dti, ep)
    assert "graph phandle is not valid" in check.messages[0]


def test_graph_endpoint_name():
    ep = Node("ep")
    port = Node("port", children=[ep])
    port.bus = GRAPH_PORT_BUS
    dti = DtInfo(Node("", children=[Node("dev", children=[port])]))
    check = make_check(None)
    check_graph_endpoint(check, dti, ep)
    assert "graph endpoint node name should be 'endpoint'" in check.messages[0]


def test_graph_child_address_single_child():
    port = Node("port", children=[Node("endpoint")])
    port.bus = GRAPH_PORT_BUS
    port.addr_cells = 1
    dti = DtInfo(Node("", children=[Node("dev", children=[port])]))
    check = make_check(None)
    check_graph_child_address(check, dti, port)
    assert "single child node 'endpoint'" in check.messages[0]


def test_graph_child_address_without_cells_passes():
    port = Node("port", children=[Node("endpoint")])
    port.bus = GRAPH_PORT_BUS
    dti = DtInfo(Node("", children=[Node("dev", children=[port])]))
    check = make_check(None)
    check_graph_child_address(check, dti, port)
    assert check.status is CheckStatus.UNCHECKED


def test_graph_child_address_nonzero_reg_passes():
    port = Node("port", children=[Node("endpoint@1", properties=[cells("reg", 1)])])
    port.bus = GRAPH_PORT_BUS
    port.addr_cells = 1
    dti = DtInfo(Node("", children=[Node("dev", children=[port])]))
    check = make_check(None)
    check_graph_child_address(check, dti, port)
    assert check.messages == []