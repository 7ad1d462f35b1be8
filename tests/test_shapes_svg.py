import pytest

from specimen_guide.diagram import NodeKind, anchor_point, to_scene
from specimen_guide.identity import SpecimenIdentity
from specimen_guide.kits import LIGATION_TUBE_COLORS, RT_PCR_KIT
from specimen_guide.shapes import (
    closed_tube, make_strip, opened_tube, package_contents, strip_panel,
    transfer_to_one, tube_strip,
)
from specimen_guide.svg import render_svg


def ligation_tubes(sample="001"):
    return RT_PCR_KIT.identities_for("K001", "ligation", "sample tubes", sample)


def test_tube_sticker_lines():
    tube = closed_tube(SpecimenIdentity("K001", "E", "6", "001"))
    assert tube.content.label_lines == ("E6", "001")
    assert not tube.content.opened


def test_shared_reagent_has_one_line():
    tube = opened_tube(SpecimenIdentity("K001", "L", "0"), "small")
    assert tube.content.label_lines == ("L0",)
    assert tube.bounds == (60.0, 120.0)


def test_unknown_tube_size():
    with pytest.raises(ValueError):
        closed_tube(None, "huge")


def test_tube_strip_lays_out_a_row():
    row = tube_strip(ligation_tubes(), LIGATION_TUBE_COLORS)
    assert len(row.children) == 10
    xs = [c.x for c in row.children]
    assert xs == sorted(xs)
    assert row.children[0].content.fluid == "blue1"
    assert row.children[-1].content.label_lines == ("L10", "001")


def test_package_contents_puts_sets_right_of_reagent():
    diluent = closed_tube(SpecimenIdentity("K001", "L", "0"))
    sets = [tube_strip(ligation_tubes(s)) for s in ("001", "002")]
    image = package_contents(diluent, sets)
    assert anchor_point(image.children[1], "center-left")[0] == pytest.approx(
        anchor_point(diluent, "center-right")[0] + 60.0)
    assert all(c.y >= 0 for c in image.children)


def test_transfer_to_one_highlights_target():
    source = opened_tube(SpecimenIdentity("K001", "A", "2", "001"), "small")
    targets = tube_strip(ligation_tubes(), opened=True)
    image = transfer_to_one(source, targets, 3, "4uL", "(P2 pipette)")
    highlight = targets.children[-1]
    assert highlight.kind == NodeKind.RECT and highlight.content.dashed
    assert anchor_point(highlight, "center") == pytest.approx(
        anchor_point(targets.cells[3][0], "center"))
    assert image.name == "transfer"


def test_transfer_to_one_bad_index():
    targets = tube_strip(ligation_tubes())
    with pytest.raises(ValueError):
        transfer_to_one(closed_tube(), targets, 10, "4uL", "(P2 pipette)")


def test_render_svg_draws_every_kind():
    panel = strip_panel(RT_PCR_KIT.identities_for("K001", "detection", "strips", "001"),
                        RT_PCR_KIT.mutation_colors)
    svg = render_svg(to_scene(panel), 0.75)
    assert svg.startswith("<svg")
    assert svg.count("D10") == 1
    assert svg.endswith("</svg>")


def test_render_svg_escapes_text():
    strip = make_strip(SpecimenIdentity("K<1", "D", "1", "a&b"))
    assert "a&amp;b" in render_svg(to_scene(strip))


def test_render_svg_rejects_unknown_kind():
    scene = {"kind": "hologram", "x": 0, "y": 0, "width": 1, "height": 1,
             "scale": 1, "content": {}, "children": []}
    with pytest.raises(ValueError):
        render_svg(scene)
