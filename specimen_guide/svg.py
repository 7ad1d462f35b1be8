"""
SVG rendering of scene dicts
============================
Consumes the output of diagram.to_scene(); knows nothing about layout.
Every content kind has a drawer, and an unknown kind is an error rather than
a silently missing shape.
"""

from __future__ import annotations
from typing import Callable, Dict, List
from xml.sax.saxutils import escape

FLUID_COLORS = {
    "": "none",
    "powder": "#f3e9c6",
    "pinkfluid": "#f4a6c1",
}


def _fluid(fluid: str) -> str:
    return FLUID_COLORS.get(fluid, fluid.rstrip("0123456789") or "none")


def _lines(scene: dict, lines: List[str], size: float) -> List[str]:
    cx = scene["x"] + scene["width"] / 2
    top = scene["y"] + scene["height"] * 0.35
    return [f'<text x="{cx:.2f}" y="{top + i * size * 1.2:.2f}" font-size="{size:.1f}" '
            f'text-anchor="middle" font-family="sans-serif">{escape(l)}</text>'
            for i, l in enumerate(lines)]


def _tube(scene: dict) -> List[str]:
    c = scene["content"]
    x, y, w, h = scene["x"], scene["y"], scene["width"], scene["height"]
    cap_h = h * 0.12
    body_y = y + cap_h
    out = []
    if c["opened"]:
        out.append(f'<rect x="{x - w * 0.4:.2f}" y="{y:.2f}" width="{w * 0.4:.2f}" '
                   f'height="{cap_h:.2f}" fill="white" stroke="black"/>')
    else:
        out.append(f'<rect x="{x:.2f}" y="{y:.2f}" width="{w:.2f}" height="{cap_h:.2f}" '
                   f'fill="white" stroke="black"/>')
    out.append(f'<path d="M{x:.2f},{body_y:.2f} L{x + w:.2f},{body_y:.2f} '
               f'L{x + w:.2f},{y + h * 0.75:.2f} L{x + w / 2:.2f},{y + h:.2f} '
               f'L{x:.2f},{y + h * 0.75:.2f} Z" fill="{_fluid(c["fluid"])}" stroke="black"/>')
    out.extend(_lines(scene, c["label_lines"], 14 * scene["scale"]))
    return out


def _strip(scene: dict) -> List[str]:
    c = scene["content"]
    x, y, w, h = scene["x"], scene["y"], scene["width"], scene["height"]
    out = [f'<rect x="{x:.2f}" y="{y:.2f}" width="{w:.2f}" height="{h * 0.2:.2f}" '
           f'fill="{escape(c["color"])}" stroke="black"/>',
           f'<rect x="{x:.2f}" y="{y + h * 0.2:.2f}" width="{w:.2f}" height="{h * 0.8:.2f}" '
           f'fill="white" stroke="black"/>']
    for i, _band in enumerate(c["bands"]):
        by = y + h * (0.4 + 0.12 * i)
        out.append(f'<line x1="{x:.2f}" y1="{by:.2f}" x2="{x + w:.2f}" y2="{by:.2f}" '
                   f'stroke="#c2185b" stroke-width="{3 * scene["scale"]:.2f}"/>')
    out.extend(_lines(dict(scene, height=h * 0.2), c["label_lines"], 10 * scene["scale"]))
    return out


def _rect(scene: dict) -> List[str]:
    c = scene["content"]
    dash = ' stroke-dasharray="6,4"' if c["dashed"] else ""
    return [f'<rect x="{scene["x"]:.2f}" y="{scene["y"]:.2f}" width="{scene["width"]:.2f}" '
            f'height="{scene["height"]:.2f}" fill="{escape(c["fill"])}" '
            f'stroke="{escape(c["stroke"])}"{dash}/>']


def _text(scene: dict) -> List[str]:
    c = scene["content"]
    weight = ' font-weight="bold"' if c["bold"] else ""
    size = c["font_size"] * scene["scale"]
    return [f'<text x="{scene["x"] + scene["width"] / 2:.2f}" y="{scene["y"] + size:.2f}" '
            f'font-size="{size:.1f}" text-anchor="middle" font-family="sans-serif"{weight}>'
            f'{escape(c["text"])}</text>']


def _connector(scene: dict) -> List[str]:
    c = scene["content"]
    s = scene["scale"]
    x1, y1 = scene["x"], scene["y"]
    x2, y2 = x1 + c["dx"] * s, y1 + c["dy"] * s
    marker = ' marker-end="url(#arrowhead)"' if c["arrowhead"] else ""
    return [f'<line x1="{x1:.2f}" y1="{y1:.2f}" x2="{x2:.2f}" y2="{y2:.2f}" '
            f'stroke="black" stroke-width="{3 * s:.2f}"{marker}/>']


def _container(scene: dict) -> List[str]:
    return []


DRAWERS: Dict[str, Callable[[dict], List[str]]] = {
    "tube": _tube,
    "strip": _strip,
    "rect": _rect,
    "text": _text,
    "connector": _connector,
    "grid": _container,
    "group": _container,
}


def _draw(scene: dict, out: List[str]):
    kind = scene["kind"]
    if kind not in DRAWERS:
        raise ValueError(f"No drawer for scene node kind {kind!r}")
    out.extend(DRAWERS[kind](scene))
    for child in scene["children"]:
        _draw(child, out)


def render_svg(scene: dict, scale: float = 1.0) -> str:
    body: List[str] = []
    _draw(scene, body)
    width = (scene["x"] + scene["width"]) * scale
    height = (scene["y"] + scene["height"]) * scale
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width:.0f}" height="{height:.0f}" '
        f'viewBox="0 0 {scene["x"] + scene["width"]:.2f} {scene["y"] + scene["height"]:.2f}">'
        '<defs><marker id="arrowhead" markerWidth="10" markerHeight="7" refX="10" refY="3.5" '
        'orient="auto"><polygon points="0 0, 10 3.5, 0 7"/></marker></defs>'
        + "".join(body) + "</svg>"
    )
