"""Live device tree: nodes, properties, labels and lookups."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from dtcheck.data import CELL_SIZE, Data, Marker, MarkerType

DTSF_V1 = 0x0001
DTSF_PLUGIN = 0x0002

MAX_PHANDLE = 0xFFFFFFFE
_INVALID_PHANDLE = 0xFFFFFFFF


@dataclass(frozen=True)
class BusType:
    """A bus kind detected on a node."""

    name: str


@dataclass
class Label:
    """A label attached to a node or property."""

    label: str
    deleted: bool = False


@dataclass(eq=False)
class Property:
    """A named property of a node."""

    name: str
    val: Data = field(default_factory=Data)
    labels: list[Label] = field(default_factory=list)
    deleted: bool = False
    srcpos: str | None = None

    def live_labels(self) -> list[Label]:
        return [lab for lab in self.labels if not lab.deleted]


class Node:
    """A node of the tree with its properties and children."""

    def __init__(self, name: str = "", properties=(), children=(), labels=()):
        self.name = name
        self.parent: Node | None = None
        self.proplist: list[Property] = []
        self.childlist: list[Node] = []
        self.labels: list[Label] = [
            Label(lab) if isinstance(lab, str) else lab for lab in labels
        ]
        self.phandle = 0
        self.addr_cells = -1
        self.size_cells = -1
        self.bus: BusType | None = None
        self.deleted = False
        self.omit_if_unused = False
        self.is_referenced = False
        self.srcpos: list[str] = []
        for prop in properties:
            self.add_property(prop)
        for child in children:
            self.add_child(child)

    def __repr__(self) -> str:
        return f"Node({self.fullpath!r})"

    @property
    def children(self) -> list[Node]:
        return [c for c in self.childlist if not c.deleted]

    @property
    def properties(self) -> list[Property]:
        return [p for p in self.proplist if not p.deleted]

    @property
    def live_labels(self) -> list[Label]:
        return [lab for lab in self.labels if not lab.deleted]

    @property
    def fullpath(self) -> str:
        if self.parent is None:
            return "/"
        parent_path = self.parent.fullpath
        if parent_path == "/":
            return "/" + self.name
        return parent_path + "/" + self.name

    @property
    def basenamelen(self) -> int:
        at = self.name.find("@")
        return len(self.name) if at < 0 else at

    @property
    def unitname(self) -> str:
        _, _, unit = self.name.partition("@")
        return unit

    def get_property(self, name: str) -> Property | None:
        """Return the first live property called ``name``."""
        return next((p for p in self.properties if p.name == name), None)

    def get_subnode(self, name: str) -> Node | None:
        """Return the first live child called exactly ``name``."""
        return next((c for c in self.children if c.name == name), None)

    def add_child(self, child: Node) -> Node:
        """Append a child node and return it."""
        child.parent = self
        self.childlist.append(child)
        return child

    def add_property(self, prop: Property) -> Property:
        """Append a property and return it."""
        self.proplist.append(prop)
        return prop

    def delete(self) -> None:
        """Mark this node, its properties, labels and subtree as deleted."""
        self.deleted = True
        for prop in self.proplist:
            prop.deleted = True
            for lab in prop.labels:
                lab.deleted = True
        for lab in self.labels:
            lab.deleted = True
        for child in self.childlist:
            child.delete()

    def walk(self) -> Iterator[Node]:
        """Yield this node and all live descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class DtInfo:
    """A tree together with the settings it is checked under."""

    dt: Node
    outname: str = "-"
    dtsflags: int = DTSF_V1
    quiet: int = 0
    generate_symbols: bool = False

    @property
    def plugin(self) -> bool:
        return bool(self.dtsflags & DTSF_PLUGIN)


def get_node_by_path(tree: Node, path: str) -> Node | None:
    """Find a node by a path relative to ``tree`` (leading slashes ignored)."""
    node = tree
    rest = path.lstrip("/")
    while rest:
        component, sep, remainder = rest.partition("/")
        node = node.get_subnode(component)
        if node is None:
            return None
        rest = remainder.lstrip("/") if sep else ""
    return node


def get_node_by_label(tree: Node, label: str) -> Node | None:
    """Return the first node carrying ``label``."""
    return next(
        (n for n in tree.walk() if any(lab.label == label for lab in n.live_labels)),
        None,
    )


def get_property_by_label(tree: Node, label: str) -> tuple[Node, Property] | None:
    """Return (node, property) for the first property carrying ``label``."""
    for node in tree.walk():
        for prop in node.properties:
            if any(lab.label == label for lab in prop.live_labels()):
                return node, prop
    return None


def get_marker_label(tree: Node, label: str) -> tuple[Node, Property, Marker] | None:
    """Return (node, property, marker) for the first label marker named ``label``."""
    for node in tree.walk():
        for prop in node.properties:
            for marker in prop.val.markers_of_type(MarkerType.LABEL):
                if marker.ref == label:
                    return node, prop, marker
    return None


def get_node_by_phandle(tree: Node, phandle: int) -> Node | None:
    """Return the node with the given phandle, or None for an invalid one."""
    if not phandle_is_valid(phandle):
        return None
    return next((n for n in tree.walk() if n.phandle == phandle), None)


def get_node_by_ref(tree: Node, ref: str) -> Node | None:
    """Resolve a reference: a path, a label, or a label followed by a path."""
    if ref == "/":
        return tree
    if ref.startswith("/"):
        return get_node_by_path(tree, ref)
    label, sep, rest = ref.partition("/")
    target = get_node_by_label(tree, label)
    if target is not None and sep:
        target = get_node_by_path(target, rest)
    return target


def get_node_phandle(tree: Node, node: Node) -> int:
    """Return the node's phandle, allocating the lowest free one if needed."""
    if phandle_is_valid(node.phandle):
        return node.phandle
    candidate = 1
    while get_node_by_phandle(tree, candidate) is not None:
        candidate += 1
    if candidate > MAX_PHANDLE:
        raise ValueError("no phandle values left")
    node.phandle = candidate
    if node.get_property("phandle") is None:
        value = Data().add_marker(MarkerType.TYPE_UINT32).append_cell(candidate)
        node.add_property(Property("phandle", value))
    return candidate


def propval_cell(prop: Property) -> int:
    """Return the single 32-bit cell held by a property."""
    if len(prop.val) != CELL_SIZE:
        raise ValueError(f"property {prop.name!r} is not a single cell")
    return int.from_bytes(prop.val.val, "big")


def propval_cell_n(prop: Property, n: int) -> int:
    """Return the ``n``-th 32-bit cell of a property."""
    if n < 0 or (n + 1) * CELL_SIZE > len(prop.val):
        raise IndexError(f"cell {n} out of range in property {prop.name!r}")
    start = n * CELL_SIZE
    return int.from_bytes(prop.val.val[start:start + CELL_SIZE], "big")


def phandle_is_valid(phandle: int) -> bool:
    """Phandles 0 and 0xffffffff are reserved."""
    return phandle != 0 and phandle != _INVALID_PHANDLE


def node_addr_cells(node: Node) -> int:
    """The node's #address-cells, defaulting to 2."""
    return 2 if node.addr_cells == -1 else node.addr_cells


def node_size_cells(node: Node) -> int:
    """The node's #size-cells, defaulting to 1."""
    return 1 if node.size_cells == -1 else node.size_cells