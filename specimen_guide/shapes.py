"""
Shape factories
===============
The recurring pictures of the bench protocols, built from diagram primitives:
tubes with stickers, detection strips, a package's strip of tubes, strip
panels and highlight boxes.
"""

from __future__ import annotations
from typing import List, Optional, Sequence

from specimen_guide.diagram import (
    DiagramNode, RectContent, StripContent, TubeContent,
    align, grid, grid_add, group, make_transfer, node, place, fit_bounds, translate,
)
from specimen_guide.identity import SpecimenIdentity, label_lines

# tube body sizes (width, height) in scene units
TUBE_SIZES = {
    "small":  (60.0, 120.0),
    "medium": (80.0, 160.0),
    "powder": (80.0, 160.0),
}
STRIP_SIZE = (40.0, 260.0)
HIGHLIGHT_PAD = 8.0


def make_tube(opened: bool, identity: Optional[SpecimenIdentity] = None, size: str = "medium",
              extra_lines: Sequence[str] = (), fluid: str = "") -> DiagramNode:
    if size not in TUBE_SIZES:
        raise ValueError(f"Unknown tube size {size!r}; expected one of {sorted(TUBE_SIZES)}")
    lines = tuple(extra_lines)
    if identity is not None:
        lines += tuple(l for l in label_lines(identity) if l)
    if size == "powder" and not fluid:
        fluid = "powder"
    w, h = TUBE_SIZES[size]
    name = lines[0] if lines else "tube"
    return node(TubeContent(opened, size, lines, fluid), w, h, name=name)


def opened_tube(identity=None, size="medium", **kw) -> DiagramNode:
    return make_tube(True, identity, size, **kw)


def closed_tube(identity=None, size="medium", **kw) -> DiagramNode:
    return make_tube(False, identity, size, **kw)


def make_strip(identity: Optional[SpecimenIdentity], color: str = "white",
               bands: Sequence[str] = ()) -> DiagramNode:
    lines = label_lines(identity) if identity is not None else ()
    w, h = STRIP_SIZE
    return node(StripContent(color, tuple(l for l in lines if l), tuple(bands)), w, h,
                name=lines[0] if lines else "strip")


def highlight(target: DiagramNode, color: str = "red") -> DiagramNode:
    """Dashed box sized to target; the caller places and aligns it."""
    w = target.width * target.scale_factor + 2 * HIGHLIGHT_PAD
    h = target.height * target.scale_factor + 2 * HIGHLIGHT_PAD
    return node(RectContent(stroke=color, dashed=True), w, h, name="highlight")


def tube_strip(identities: Sequence[SpecimenIdentity], colors: Sequence[str] = (),
               opened: bool = False, gap: float = 10.0) -> DiagramNode:
    """One row of tubes for a package's component set, e.g. L1-001 … L10-001."""
    row = grid(1, len(identities), 0.0, gap, name="tube strip")
    for i, identity in enumerate(identities):
        fluid = colors[i] if i < len(colors) else ""
        grid_add(row, make_tube(opened, identity, "small", fluid=fluid), 0, i)
    return row


def strip_panel(identities: Sequence[SpecimenIdentity], colors: Sequence[str] = (),
                gap: float = 10.0) -> DiagramNode:
    """Detection strips side by side, as they lie in the scanner."""
    row = grid(1, len(identities), 0.0, gap, name="strip panel")
    for i, identity in enumerate(identities):
        color = colors[i] if i < len(colors) else "white"
        grid_add(row, make_strip(identity, color), 0, i)
    return row


def package_contents(reagent: DiagramNode, sample_sets: List[DiagramNode],
                     row_gap: float = 20.0, spacing: float = 60.0) -> DiagramNode:
    """Reagent tube on the left, one row per sample set stacked to its right."""
    image = group(name="package")
    rows = grid(len(sample_sets), 1, row_gap, 0.0, name="sample sets")
    for i, s in enumerate(sample_sets):
        grid_add(rows, s, i, 0)
    place(image, reagent)
    place(image, rows)
    align(rows, "center-left", reagent, "center-right")
    translate(rows, spacing, 0.0)
    # rows may sit above the reagent top when taller than it
    if rows.y < 0:
        translate(reagent, 0.0, -rows.y)
        translate(rows, 0.0, -rows.y)
    return fit_bounds(image)


def transfer_to_one(from_node: DiagramNode, targets: DiagramNode, index: int,
                    volume_label: str, tool_label: str, width: float = 300.0) -> DiagramNode:
    """Transfer into a tube strip with target number `index` boxed."""
    if targets.kind.value != "grid" or not (0 <= index < len(targets.cells)):
        raise ValueError(f"Target index {index} not in the tube strip")
    target = targets.cells[index][0]
    box = highlight(target)
    place(targets, box)
    align(box, "center", target, "center")
    return make_transfer(from_node, targets, width, volume_label, tool_label)
