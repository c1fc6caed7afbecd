"""Certificate layout: template + resolved text -> RenderSpec.

The RenderSpec is a positioned, renderer-agnostic description of a finished
certificate. The live preview and the exported document both draw from it,
which is what keeps them visually identical.

All geometry is in pixels at the canonical A-series landscape size
(1123 x 794, ratio 1.4142). Consumers scale the whole tree uniformly with
``RenderSpec.scaled``. Every coordinate is rounded to two decimals so that
identical inputs always produce identical trees.

Vertical flow:
- top section (logo, top flourish, title, subtitle, presented line, name,
  underline, body) flows down from the top padding
- bottom section (bottom flourish, signature block, footer, seal) is anchored
  to the bottom padding

Text is fitted, never overflowed: one-line regions shrink to the content
width, and the top section shrinks until it clears the bottom section.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Literal

from pydantic.alias_generators import to_camel

from schemas import CertificateTemplate, ResolvedText

CANVAS_WIDTH = 1123
CANVAS_HEIGHT = 794

PADDING_X = 80
PADDING_Y = 60
CONTENT_WIDTH = CANVAS_WIDTH - 2 * PADDING_X

# Smallest font size any fitted region shrinks to
MIN_FONT_SIZE = 8

FONT_STACKS = {
    "serif": 'Georgia, "Times New Roman", serif',
    "sans-serif": '"Arial", "Helvetica", sans-serif',
    "cursive": '"Brush Script MT", "Lucida Handwriting", cursive',
    "monospace": '"Courier New", monospace',
}

# Average glyph advance as a fraction of font size, used for line wrapping
_GLYPH_WIDTH = {
    "serif": 0.5,
    "sans-serif": 0.52,
    "cursive": 0.45,
    "monospace": 0.6,
}

# Baseline offset inside a line box, as a fraction of font size
_ASCENT = 0.8

DEFAULT_SUBTITLES = {
    "achievement": "OF ACHIEVEMENT",
    "participation": "OF PARTICIPATION",
    "completion": "OF COMPLETION",
}

_FRAME_INSET = 16
_ORNAMENT_SIZE = 80
_FLOURISH_HEIGHT = 40
_LOGO_WIDTH = 120
_LOGO_HEIGHT = 48
_BODY_MAX_WIDTH = 760
_UNDERLINE_WIDTH = 400
_SIGNATURE_BLOCK_WIDTH = 240
_SIGNATURE_LINE_WIDTH = 180
_SIGNATURE_FONT_SIZE = 28
_FOOTER_FONT_SIZE = 12
_SEAL_RADIUS = 48
_TITLE_TRACKING = 0.1
_BODY_LINE_FACTOR = 1.8
# Clearance between the body and the signature block or seal
_BODY_GAP = 8
_SCALE_STEP = 0.05
_MIN_SCALE = 0.4

Anchor = Literal["start", "middle", "end"]
Corner = Literal["top-left", "top-right", "bottom-left", "bottom-right"]


def _r(value: float) -> float:
    return round(float(value), 2)


@dataclass(frozen=True)
class TextRegion:
    """A block of text. ``y`` is the baseline of the first line."""

    role: str
    lines: tuple[str, ...]
    x: float
    y: float
    font_size: float
    line_height: float
    font_family: str
    color: str
    anchor: Anchor
    weight: Literal["normal", "bold"] = "normal"
    style: Literal["normal", "italic"] = "normal"
    letter_spacing: float = 0.0

    _GEOMETRY = ("x", "y", "font_size", "line_height", "letter_spacing")


@dataclass(frozen=True)
class Frame:
    role: str
    x: float
    y: float
    width: float
    height: float
    stroke: str
    stroke_width: float
    radius: float
    opacity: float = 1.0

    _GEOMETRY = ("x", "y", "width", "height", "stroke_width", "radius")


@dataclass(frozen=True)
class Rule:
    """A horizontal line (name underline, signature line)."""

    role: str
    x: float
    y: float
    width: float
    stroke: str
    stroke_width: float

    _GEOMETRY = ("x", "y", "width", "stroke_width")


@dataclass(frozen=True)
class Ornament:
    corner: Corner
    x: float
    y: float
    size: float
    color: str
    opacity: float = 0.7

    _GEOMETRY = ("x", "y", "size")


@dataclass(frozen=True)
class Flourish:
    position: Literal["top", "bottom"]
    x: float
    y: float
    width: float
    height: float
    color: str
    opacity: float = 0.6

    _GEOMETRY = ("x", "y", "width", "height")


@dataclass(frozen=True)
class Seal:
    cx: float
    cy: float
    radius: float
    color: str
    label: str

    _GEOMETRY = ("cx", "cy", "radius")


@dataclass(frozen=True)
class LogoSlot:
    position: str
    x: float
    y: float
    width: float
    height: float

    _GEOMETRY = ("x", "y", "width", "height")


def _scale(item: Any, factor: float) -> Any:
    changes = {name: _r(getattr(item, name) * factor) for name in item._GEOMETRY}
    return dataclasses.replace(item, **changes)


def _to_camel_dict(item: Any) -> dict[str, Any]:
    result = {}
    for f in dataclasses.fields(item):
        value = getattr(item, f.name)
        if isinstance(value, tuple):
            value = list(value)
        result[to_camel(f.name)] = value
    return result


@dataclass(frozen=True)
class RenderSpec:
    """Declarative description of one rendered certificate."""

    width: float
    height: float
    background: str
    frames: tuple[Frame, ...] = ()
    ornaments: tuple[Ornament, ...] = ()
    flourishes: tuple[Flourish, ...] = ()
    rules: tuple[Rule, ...] = ()
    texts: tuple[TextRegion, ...] = ()
    seal: Seal | None = None
    logo: LogoSlot | None = None
    layout_style: str = "classic"
    certificate_type: str = "achievement"

    def text(self, role: str) -> TextRegion | None:
        return next((t for t in self.texts if t.role == role), None)

    def scaled(self, width: float) -> RenderSpec:
        """The same layout uniformly scaled to ``width`` pixels wide."""
        factor = width / self.width
        return dataclasses.replace(
            self,
            width=_r(width),
            height=_r(self.height * factor),
            frames=tuple(_scale(f, factor) for f in self.frames),
            ornaments=tuple(_scale(o, factor) for o in self.ornaments),
            flourishes=tuple(_scale(f, factor) for f in self.flourishes),
            rules=tuple(_scale(r, factor) for r in self.rules),
            texts=tuple(_scale(t, factor) for t in self.texts),
            seal=_scale(self.seal, factor) if self.seal else None,
            logo=_scale(self.logo, factor) if self.logo else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON tree with camelCase keys, as served to the preview UI."""
        return {
            "width": self.width,
            "height": self.height,
            "background": self.background,
            "layoutStyle": self.layout_style,
            "certificateType": self.certificate_type,
            "frames": [_to_camel_dict(f) for f in self.frames],
            "ornaments": [_to_camel_dict(o) for o in self.ornaments],
            "flourishes": [_to_camel_dict(f) for f in self.flourishes],
            "rules": [_to_camel_dict(r) for r in self.rules],
            "texts": [_to_camel_dict(t) for t in self.texts],
            "seal": _to_camel_dict(self.seal) if self.seal else None,
            "logo": _to_camel_dict(self.logo) if self.logo else None,
        }


def measure_text(
    text: str, font_size: float, family: str, tracking: float = 0.0
) -> float:
    """Estimated width of the widest line of ``text``.

    ``tracking`` is extra letter spacing as a fraction of the font size.
    """
    longest = max((len(line) for line in text.split("\n")), default=0)
    return longest * font_size * (_GLYPH_WIDTH[family] + tracking)


def fit_font_size(
    text: str,
    font_size: float,
    family: str,
    max_width: float,
    tracking: float = 0.0,
) -> float:
    """Largest size up to ``font_size`` at which every line fits ``max_width``."""
    width = measure_text(text, font_size, family, tracking)
    if width <= max_width:
        return font_size
    return math.floor(font_size * max_width / width * 100) / 100


def wrap_text(
    text: str,
    font_size: float,
    family: str,
    max_width: float,
    tracking: float = 0.0,
) -> list[str]:
    """Greedy word wrap using a fixed per-family glyph width.

    Explicit newlines start a new line. A single word wider than the line is
    kept whole on its own line.
    """
    advance = font_size * (_GLYPH_WIDTH[family] + tracking)
    max_chars = max(1, int(max_width / advance))
    lines: list[str] = []
    for paragraph in text.split("\n"):
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if len(candidate) <= max_chars or not current:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


def _baseline(top: float, font_size: float, line_height: float) -> float:
    return top + (line_height - font_size) / 2 + font_size * _ASCENT


def _frames(template: CertificateTemplate) -> list[Frame]:
    inset = _FRAME_INSET
    width = CANVAS_WIDTH - 2 * inset
    height = CANVAS_HEIGHT - 2 * inset
    bw = template.border_width

    if template.border_style == "simple":
        return [
            Frame("outer", inset, inset, width, height, template.primary_color, bw, 2)
        ]
    if template.border_style == "double":
        inner = inset + 12
        return [
            Frame("outer", inset, inset, width, height, template.primary_color, bw, 0),
            Frame(
                "inner",
                inner,
                inner,
                CANVAS_WIDTH - 2 * inner,
                CANVAS_HEIGHT - 2 * inner,
                template.accent_color,
                1,
                0,
            ),
        ]
    inner = inset + 8
    return [
        Frame("outer", inset, inset, width, height, template.accent_color, bw, 4),
        Frame(
            "inner",
            inner,
            inner,
            CANVAS_WIDTH - 2 * inner,
            CANVAS_HEIGHT - 2 * inner,
            template.accent_color,
            1,
            2,
            opacity=0.4,
        ),
    ]


def _ornaments(template: CertificateTemplate) -> list[Ornament]:
    if not template.show_corner_ornaments:
        return []
    near = _FRAME_INSET + 8
    far_x = CANVAS_WIDTH - near - _ORNAMENT_SIZE
    far_y = CANVAS_HEIGHT - near - _ORNAMENT_SIZE
    color = template.accent_color
    return [
        Ornament("top-left", near, near, _ORNAMENT_SIZE, color),
        Ornament("top-right", far_x, near, _ORNAMENT_SIZE, color),
        Ornament("bottom-left", near, far_y, _ORNAMENT_SIZE, color),
        Ornament("bottom-right", far_x, far_y, _ORNAMENT_SIZE, color),
    ]


def _logo(template: CertificateTemplate, top: float) -> LogoSlot | None:
    position = template.logo_position
    if position == "hidden":
        return None
    if position == "top-left":
        x = PADDING_X
    elif position == "top-right":
        x = CANVAS_WIDTH - PADDING_X - _LOGO_WIDTH
    else:
        x = (CANVAS_WIDTH - _LOGO_WIDTH) / 2
    return LogoSlot(position, _r(x), _r(top), _LOGO_WIDTH, _LOGO_HEIGHT)


def _flourish(template: CertificateTemplate, position: str, top: float) -> Flourish:
    width = CANVAS_WIDTH * 0.6
    return Flourish(
        position,
        _r((CANVAS_WIDTH - width) / 2),
        _r(top),
        _r(width),
        _FLOURISH_HEIGHT,
        template.accent_color,
    )


class _Flow:
    """Stacks text regions down the page, tracking the running y position."""

    def __init__(self, template: CertificateTemplate, top: float) -> None:
        self.classic = template.layout_style == "classic"
        self.anchor: Anchor = "middle" if self.classic else "start"
        self.x = CANVAS_WIDTH / 2 if self.classic else PADDING_X
        self.cursor = top
        self.texts: list[TextRegion] = []

    def add(
        self,
        role: str,
        lines: list[str],
        *,
        font_size: float,
        line_factor: float,
        font_family: str,
        color: str,
        **style: Any,
    ) -> None:
        line_height = font_size * line_factor
        self.texts.append(
            TextRegion(
                role=role,
                lines=tuple(lines),
                x=_r(self.x),
                y=_r(_baseline(self.cursor, font_size, line_height)),
                font_size=_r(font_size),
                line_height=_r(line_height),
                font_family=font_family,
                color=color,
                anchor=self.anchor,
                **style,
            )
        )
        self.cursor += line_height * len(lines)


def _fit_lines(
    text: str, font_size: float, family: str, tracking: float = 0.0
) -> tuple[float, list[str]]:
    """Shrink a one-line region to the content width; wrap below the minimum."""
    size = fit_font_size(text, font_size, family, CONTENT_WIDTH, tracking)
    if size >= MIN_FONT_SIZE:
        return size, text.split("\n")
    return MIN_FONT_SIZE, wrap_text(
        text, MIN_FONT_SIZE, family, CONTENT_WIDTH, tracking=tracking
    )


def _head(
    template: CertificateTemplate, resolved: ResolvedText, top: float, scale: float
) -> tuple[_Flow, list[Rule]]:
    """Title through name underline, with sizes and gaps multiplied by ``scale``."""

    def size(value: float) -> float:
        return max(MIN_FONT_SIZE, value * scale)

    title_family = FONT_STACKS[template.title_font_family]
    body_family = FONT_STACKS[template.body_font_family]
    flow = _Flow(template, top)
    rules: list[Rule] = []

    title_size, title_lines = _fit_lines(
        resolved.title,
        size(template.title_font_size),
        template.title_font_family,
        tracking=_TITLE_TRACKING,
    )
    flow.add(
        "title",
        title_lines,
        font_size=title_size,
        line_factor=1.1,
        font_family=title_family,
        color=template.primary_color,
        weight="bold",
        letter_spacing=_r(title_size * _TITLE_TRACKING),
    )
    flow.cursor += 12 * scale

    subtitle_size, subtitle_lines = _fit_lines(
        resolved.subtitle or DEFAULT_SUBTITLES[template.certificate_type],
        size(template.subtitle_font_size),
        template.title_font_family,
    )
    flow.add(
        "subtitle",
        subtitle_lines,
        font_size=subtitle_size,
        line_factor=1.2,
        font_family=title_family,
        color=template.text_color,
        style="italic",
    )
    flow.cursor += (template.title_spacing + 20) * scale

    presented_size, presented_lines = _fit_lines(
        resolved.presented_text,
        size(template.body_font_size),
        template.body_font_family,
    )
    flow.add(
        "presented",
        presented_lines,
        font_size=presented_size,
        line_factor=1.5,
        font_family=body_family,
        color=template.text_color,
        style="italic",
    )
    flow.cursor += template.name_spacing * scale

    name_size, name_lines = _fit_lines(
        resolved.recipient_name,
        size(template.name_font_size),
        template.title_font_family,
    )
    flow.add(
        "name",
        name_lines,
        font_size=name_size,
        line_factor=1.2,
        font_family=title_family,
        color=template.primary_color,
        weight="bold",
    )
    if template.name_underline:
        underline_x = (
            (CANVAS_WIDTH - _UNDERLINE_WIDTH) / 2 if flow.classic else PADDING_X
        )
        rules.append(
            Rule(
                "name-underline",
                _r(underline_x),
                _r(flow.cursor + 8),
                _UNDERLINE_WIDTH,
                template.accent_color,
                2,
            )
        )
        flow.cursor += 8 + 2
    flow.cursor += (16 + template.content_spacing) * scale
    return flow, rules


def _fit_body(
    text: str,
    font_size: float,
    family: str,
    width: float,
    available: float,
    *,
    truncate: bool,
) -> tuple[float, list[str]] | None:
    """Body size and lines that fit ``available`` height, shrinking 1px at a time.

    Returns None when even the minimum size overflows, unless ``truncate``,
    in which case the overflowing lines are dropped and the last kept line
    ends with an ellipsis.
    """
    size = max(MIN_FONT_SIZE, font_size)
    while True:
        lines = wrap_text(text, size, family, width)
        line_height = size * _BODY_LINE_FACTOR
        if len(lines) * line_height <= available:
            return size, lines
        if size <= MIN_FONT_SIZE:
            break
        size = max(MIN_FONT_SIZE, size - 1)
    if not truncate:
        return None
    kept = lines[: max(1, int(available // line_height))]
    kept[-1] = kept[-1].rstrip() + "…"
    return size, kept


def render(template: CertificateTemplate, resolved: ResolvedText) -> RenderSpec:
    """Lay out one certificate. Pure: same inputs, same tree.

    The bottom section is placed first. When the top section does not fit
    above it, the body shrinks first, then the whole top section scales
    down in steps; at the smallest scale the body is truncated.
    """
    body_family = FONT_STACKS[template.body_font_family]
    flourishes: list[Flourish] = []

    # Bottom section, anchored to the bottom padding
    bottom = CANVAS_HEIGHT - PADDING_Y
    bottom_flourish = None
    if template.show_bottom_flourish:
        bottom -= _FLOURISH_HEIGHT
        bottom_flourish = _flourish(template, "bottom", bottom)
        bottom -= 8

    block_center = CANVAS_WIDTH - PADDING_X - _SIGNATURE_BLOCK_WIDTH / 2
    footer_line_height = _FOOTER_FONT_SIZE * 1.5
    signature_line_height = _SIGNATURE_FONT_SIZE * 1.2
    footer_top = bottom - footer_line_height
    line_y = footer_top - 8
    signature_top = line_y - 8 - signature_line_height

    seal = None
    floor = signature_top
    if template.show_seal:
        seal = Seal(
            cx=_r(PADDING_X + _SEAL_RADIUS + 20),
            cy=_r(line_y - _SEAL_RADIUS / 2),
            radius=_SEAL_RADIUS,
            color=template.accent_color,
            label=template.certificate_type.upper(),
        )
        floor = min(floor, seal.cy - seal.radius)
    floor -= _BODY_GAP

    # Top section
    top = PADDING_Y
    logo = _logo(template, top)
    if logo is not None:
        top += _LOGO_HEIGHT + 12

    if template.show_top_flourish:
        flourishes.append(_flourish(template, "top", top))
        top += _FLOURISH_HEIGHT + 8
    if bottom_flourish is not None:
        flourishes.append(bottom_flourish)

    classic = template.layout_style == "classic"
    body_width = _BODY_MAX_WIDTH if classic else CONTENT_WIDTH
    scale = 1.0
    while True:
        flow, rules = _head(template, resolved, top, scale)
        body = _fit_body(
            resolved.body,
            template.body_font_size * scale,
            template.body_font_family,
            body_width,
            floor - flow.cursor,
            truncate=scale <= _MIN_SCALE,
        )
        if body is not None:
            break
        scale = round(scale - _SCALE_STEP, 2)

    body_size, body_lines = body
    flow.add(
        "body",
        body_lines,
        font_size=body_size,
        line_factor=_BODY_LINE_FACTOR,
        font_family=body_family,
        color=template.text_color,
    )

    signature_size = fit_font_size(
        resolved.signature, _SIGNATURE_FONT_SIZE, "cursive", _SIGNATURE_BLOCK_WIDTH
    )
    footer_size = fit_font_size(
        resolved.footer,
        _FOOTER_FONT_SIZE,
        template.body_font_family,
        _SIGNATURE_BLOCK_WIDTH,
    )

    texts = list(flow.texts)
    texts.append(
        TextRegion(
            role="signature",
            lines=(resolved.signature,),
            x=_r(block_center),
            y=_r(_baseline(signature_top, signature_size, signature_line_height)),
            font_size=_r(signature_size),
            line_height=_r(signature_line_height),
            font_family=FONT_STACKS["cursive"],
            color=template.primary_color,
            anchor="middle",
        )
    )
    rules.append(
        Rule(
            "signature-line",
            _r(block_center - _SIGNATURE_LINE_WIDTH / 2),
            _r(line_y),
            _SIGNATURE_LINE_WIDTH,
            template.primary_color,
            2,
        )
    )
    texts.append(
        TextRegion(
            role="footer",
            lines=(resolved.footer,),
            x=_r(block_center),
            y=_r(_baseline(footer_top, footer_size, footer_line_height)),
            font_size=_r(footer_size),
            line_height=_r(footer_line_height),
            font_family=body_family,
            color=template.text_color,
            anchor="middle",
        )
    )

    return RenderSpec(
        width=CANVAS_WIDTH,
        height=CANVAS_HEIGHT,
        background=template.background_color,
        frames=tuple(_frames(template)),
        ornaments=tuple(_ornaments(template)),
        flourishes=tuple(flourishes),
        rules=tuple(rules),
        texts=tuple(texts),
        seal=seal,
        logo=logo,
        layout_style=template.layout_style,
        certificate_type=template.certificate_type,
    )
