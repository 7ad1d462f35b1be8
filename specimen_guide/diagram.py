"""
Layer 4 — Diagram Composition Engine
====================================
A small 2-D scene graph for the tube / strip / grid illustrations shown next
to instructions and validation prompts.

Coordinate model (y grows downward, origin = top-left of the root):
  - every node has a local position (x, y) relative to its parent,
    bounds (width, height) and a scale factor;
  - effective scale = product of scale factors from the root down to the node;
  - absolute position = parent absolute position + parent effective scale * (x, y);
  - effective size = (width, height) * effective scale.

Children are owned by exactly one parent and are drawn in list order (later
on top). Alignment is a one-shot layout action: the offset it computes is
baked into the node's position and never re-evaluated.

The engine only lays out. to_scene() emits a plain dict tree with resolved
absolute geometry for a renderer (see svg.py).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterator, List, Optional, Tuple
import numpy as np

from specimen_guide.errors import CyclicReference, NodeAlreadyPlaced

Point = Tuple[float, float]


# ── Node content (tagged variants) ────────────────────────────────────────────

class NodeKind(str, Enum):
    TUBE      = "tube"
    STRIP     = "strip"
    RECT      = "rect"
    GRID      = "grid"
    GROUP     = "group"
    TEXT      = "text"
    CONNECTOR = "connector"


@dataclass(frozen=True)
class TubeContent:
    kind: ClassVar[NodeKind] = NodeKind.TUBE
    opened: bool = False
    size: str = "medium"                 # small | medium | powder
    label_lines: Tuple[str, ...] = ()
    fluid: str = ""                      # css-ish class for the liquid, "" = empty

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "opened": self.opened, "size": self.size,
                "label_lines": list(self.label_lines), "fluid": self.fluid}


@dataclass(frozen=True)
class StripContent:
    kind: ClassVar[NodeKind] = NodeKind.STRIP
    color: str = "white"
    label_lines: Tuple[str, ...] = ()
    bands: Tuple[str, ...] = ()          # band names drawn on the strip, e.g. ("C", "W")

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "color": self.color,
                "label_lines": list(self.label_lines), "bands": list(self.bands)}


@dataclass(frozen=True)
class RectContent:
    kind: ClassVar[NodeKind] = NodeKind.RECT
    fill: str = "none"
    stroke: str = "black"
    dashed: bool = False

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "fill": self.fill, "stroke": self.stroke,
                "dashed": self.dashed}


@dataclass(frozen=True)
class TextContent:
    kind: ClassVar[NodeKind] = NodeKind.TEXT
    text: str = ""
    font_size: float = 20.0
    bold: bool = False

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "text": self.text, "font_size": self.font_size,
                "bold": self.bold}


@dataclass(frozen=True)
class ConnectorContent:
    """Arrow from the node's origin to (dx, dy) in the node's local frame."""
    kind: ClassVar[NodeKind] = NodeKind.CONNECTOR
    dx: float = 0.0
    dy: float = 0.0
    arrowhead: bool = True

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "dx": self.dx, "dy": self.dy,
                "arrowhead": self.arrowhead}


@dataclass(frozen=True)
class GridContent:
    kind: ClassVar[NodeKind] = NodeKind.GRID
    rows: int = 1
    cols: int = 1
    row_gap: float = 0.0
    col_gap: float = 0.0
    cell_width: Optional[float] = None   # None = widest child
    cell_height: Optional[float] = None  # None = tallest child

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "rows": self.rows, "cols": self.cols,
                "row_gap": self.row_gap, "col_gap": self.col_gap,
                "cell_width": self.cell_width, "cell_height": self.cell_height}


@dataclass(frozen=True)
class GroupContent:
    kind: ClassVar[NodeKind] = NodeKind.GROUP

    def to_dict(self) -> dict:
        return {"kind": self.kind.value}


# ── Scene node ────────────────────────────────────────────────────────────────

@dataclass(eq=False)
class DiagramNode:
    content: object
    width: float
    height: float
    x: float = 0.0
    y: float = 0.0
    scale_factor: float = 1.0
    name: str = ""
    children: List["DiagramNode"] = field(default_factory=list)
    parent: Optional["DiagramNode"] = field(default=None, repr=False)
    # grid bookkeeping: (child, row, col, origin_x, origin_y) with the cell origin last applied
    cells: List[Tuple["DiagramNode", int, int, float, float]] = field(default_factory=list, repr=False)

    @property
    def kind(self) -> NodeKind:
        return self.content.kind

    @property
    def position(self) -> Point:
        return (self.x, self.y)

    @property
    def bounds(self) -> Point:
        return (self.width, self.height)

    def ancestors(self) -> Iterator["DiagramNode"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def descendants(self) -> Iterator["DiagramNode"]:
        for child in self.children:
            yield child
            yield from child.descendants()

    def is_descendant_of(self, other: "DiagramNode") -> bool:
        return any(a is other for a in self.ancestors())


def node(content, width: float, height: float, name: str = "") -> DiagramNode:
    if width < 0 or height < 0:
        raise ValueError(f"Bounds must be non-negative, got ({width}, {height})")
    return DiagramNode(content=content, width=float(width), height=float(height), name=name)


def group(width: float = 0.0, height: float = 0.0, name: str = "") -> DiagramNode:
    return node(GroupContent(), width, height, name)


# ── Geometry ──────────────────────────────────────────────────────────────────

def effective_scale(n: DiagramNode) -> float:
    s = n.scale_factor
    for a in n.ancestors():
        s *= a.scale_factor
    return s


def absolute_position(n: DiagramNode) -> Point:
    if n.parent is None:
        return (n.x, n.y)
    px, py = absolute_position(n.parent)
    ps = effective_scale(n.parent)
    return (px + ps * n.x, py + ps * n.y)


def effective_size(n: DiagramNode) -> Point:
    s = effective_scale(n)
    return (n.width * s, n.height * s)


_H = {"left": 0.0, "center": 0.5, "right": 1.0}
_V = {"top": 0.0, "center": 0.5, "bottom": 1.0}


def parse_anchor(anchor: str) -> Point:
    """
    "center-right", "bottom-left", "center-top", "center" ... → (fx, fy)
    fractions of the width/height. Token order does not matter.
    """
    tokens = [t for t in anchor.strip().lower().split("-") if t]
    if not tokens or len(tokens) > 2:
        raise ValueError(f"Bad anchor {anchor!r}")
    fx = fy = None
    for t in tokens:
        if t in ("left", "right"):
            if fx is not None:
                raise ValueError(f"Bad anchor {anchor!r}")
            fx = _H[t]
        elif t in ("top", "bottom"):
            if fy is not None:
                raise ValueError(f"Bad anchor {anchor!r}")
            fy = _V[t]
        elif t == "center":
            continue
        else:
            raise ValueError(f"Unknown anchor token {t!r} in {anchor!r}")
    return (0.5 if fx is None else fx, 0.5 if fy is None else fy)


def anchor_point(n: DiagramNode, anchor: str) -> Point:
    """Absolute coordinates of one of the nine anchor points of n."""
    fx, fy = parse_anchor(anchor)
    ax, ay = absolute_position(n)
    w, h = effective_size(n)
    return (ax + fx * w, ay + fy * h)


# ── Layout operations ─────────────────────────────────────────────────────────

def place(parent: DiagramNode, child: DiagramNode, x: float = 0.0, y: float = 0.0) -> DiagramNode:
    """Append child to parent at local offset (x, y). Returns child."""
    if child.parent is not None:
        raise NodeAlreadyPlaced(f"Node {child.name or child.kind.value!r} already has a parent")
    if child is parent or parent.is_descendant_of(child):
        raise CyclicReference(f"Cannot place {child.name or child.kind.value!r} inside itself")
    child.parent = parent
    child.x, child.y = float(x), float(y)
    parent.children.append(child)
    return child


def translate(n: DiagramNode, dx: float = 0.0, dy: float = 0.0) -> DiagramNode:
    n.x += dx
    n.y += dy
    return n


def scale(n: DiagramNode, factor: float) -> DiagramNode:
    if factor <= 0:
        raise ValueError(f"Scale factor must be positive, got {factor}")
    n.scale_factor *= factor
    if n.parent is not None and n.parent.kind == NodeKind.GRID:
        _relayout_grid(n.parent)
    return n


def align(n: DiagramNode, anchor: str, reference: DiagramNode, reference_anchor: str) -> DiagramNode:
    """
    Move n so that its `anchor` point lands on `reference`'s `reference_anchor`
    point. The reference must not be n or inside n.
    """
    if reference is n or reference.is_descendant_of(n):
        raise CyclicReference(
            f"Cannot align {n.name or n.kind.value!r} against itself or one of its descendants")
    tx, ty = anchor_point(reference, reference_anchor)
    cx, cy = anchor_point(n, anchor)
    parent_scale = effective_scale(n.parent) if n.parent is not None else 1.0
    n.x += (tx - cx) / parent_scale
    n.y += (ty - cy) / parent_scale
    return n


def fit_bounds(n: DiagramNode, padding: float = 0.0) -> DiagramNode:
    """Grow n's bounds to enclose all of its children (local frame)."""
    if not n.children:
        return n
    extents = np.array([[c.x + c.width * c.scale_factor, c.y + c.height * c.scale_factor]
                        for c in n.children])
    far = extents.max(axis=0) + padding
    n.width = max(n.width, float(far[0]))
    n.height = max(n.height, float(far[1]))
    return n


# ── Grid container ────────────────────────────────────────────────────────────

def grid(rows: int, cols: int, row_gap: float = 0.0, col_gap: float = 0.0,
         cell_width: Optional[float] = None, cell_height: Optional[float] = None,
         name: str = "") -> DiagramNode:
    if rows < 1 or cols < 1:
        raise ValueError(f"Grid needs at least one row and column, got {rows}x{cols}")
    content = GridContent(rows, cols, float(row_gap), float(col_gap), cell_width, cell_height)
    g = node(content, 0.0, 0.0, name)
    _relayout_grid(g)
    return g


def grid_add(g: DiagramNode, child: DiagramNode, row: int, col: int) -> DiagramNode:
    """
    Put child into cell (row, col). The child's current position is kept as
    an offset inside the cell, so nodes pre-aligned to each other stay put.
    Later moves (align, translate) become the new offset and survive relayout.
    """
    content: GridContent = g.content
    if g.kind != NodeKind.GRID:
        raise ValueError(f"grid_add needs a grid node, got {g.kind.value}")
    if not (0 <= row < content.rows and 0 <= col < content.cols):
        raise ValueError(f"Cell ({row}, {col}) outside {content.rows}x{content.cols} grid")
    place(g, child, child.x, child.y)
    g.cells.append((child, row, col, 0.0, 0.0))
    _relayout_grid(g)
    return child


def cell_size(g: DiagramNode) -> Point:
    content: GridContent = g.content
    if g.cells:
        sizes = np.array([[c.width * c.scale_factor, c.height * c.scale_factor]
                          for c, _, _, _, _ in g.cells])
        widest, tallest = sizes.max(axis=0)
    else:
        widest = tallest = 0.0
    cw = content.cell_width if content.cell_width is not None else float(widest)
    ch = content.cell_height if content.cell_height is not None else float(tallest)
    return (cw, ch)


def _relayout_grid(g: DiagramNode):
    content: GridContent = g.content
    cw, ch = cell_size(g)
    pitch = np.array([cw + content.col_gap, ch + content.row_gap])
    for i, (child, row, col, old_x, old_y) in enumerate(g.cells):
        # offset inside the cell is read back from the live position
        origin_x, origin_y = (float(v) for v in np.array([col, row]) * pitch)
        child.x += origin_x - old_x
        child.y += origin_y - old_y
        g.cells[i] = (child, row, col, origin_x, origin_y)
    g.width = content.cols * cw + (content.cols - 1) * content.col_gap
    g.height = content.rows * ch + (content.rows - 1) * content.row_gap


# ── Composites ────────────────────────────────────────────────────────────────

def text(value: str, font_size: float = 20.0, bold: bool = False) -> DiagramNode:
    # rough glyph box; the renderer centres text inside it
    return node(TextContent(value, font_size, bold), 0.6 * font_size * max(len(value), 1),
                font_size, name=value)


ARROW_GAP = 10.0


def make_transfer(from_node: DiagramNode, to_node: DiagramNode, width: float,
                  volume_label: str, tool_label: str) -> DiagramNode:
    """
    [from] ──volume──▶ [to]
             (tool)
    from_node keeps its own position; to_node is bottom-aligned with it and
    set `width` to its right. The arrow runs level, halfway between the two
    vertical centres.
    """
    root = group(name="transfer")
    place(root, from_node, from_node.x, from_node.y)
    place(root, to_node)
    align(to_node, "bottom-left", from_node, "bottom-right")
    translate(to_node, width, 0.0)

    start_x, start_y = anchor_point(from_node, "center-right")
    end_x, end_y = anchor_point(to_node, "center-left")
    start_x += ARROW_GAP
    end_x -= ARROW_GAP
    length = max(end_x - start_x, 0.0)
    connector = node(ConnectorContent(length, 0.0), length, 0.0, name="arrow")
    place(root, connector, start_x, (start_y + end_y) / 2.0)

    volume = text(volume_label, 20.0, bold=True)
    place(root, volume)
    align(volume, "center-bottom", connector, "center-top")
    translate(volume, 0.0, -5.0)

    tool = text(tool_label, 16.0)
    place(root, tool)
    align(tool, "center-top", connector, "center-bottom")
    translate(tool, 0.0, 5.0)

    _shift_into_view(root)
    fit_bounds(root)
    return root


def _shift_into_view(root: DiagramNode):
    """Translate children so nothing sits at negative local coordinates."""
    if not root.children:
        return
    mins = np.array([[c.x, c.y] for c in root.children]).min(axis=0)
    dx, dy = -min(float(mins[0]), 0.0), -min(float(mins[1]), 0.0)
    if dx or dy:
        for c in root.children:
            translate(c, dx, dy)


# ── Scene output ──────────────────────────────────────────────────────────────

def to_scene(root: DiagramNode) -> dict:
    """Serialisable tree with resolved absolute geometry."""
    x, y = absolute_position(root)
    w, h = effective_size(root)
    return {
        "kind": root.kind.value,
        "name": root.name,
        "x": round(x, 3),
        "y": round(y, 3),
        "width": round(w, 3),
        "height": round(h, 3),
        "scale": round(effective_scale(root), 6),
        "content": root.content.to_dict(),
        "children": [to_scene(c) for c in root.children],
    }
