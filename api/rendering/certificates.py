"""Certificate output adapters: RenderSpec -> SVG, PDF and PNG.

The layout is decided entirely by ``rendering.layout``; this module only
draws what the RenderSpec describes. The preview endpoint and the document
exporter both go through ``render_spec_to_svg``.
"""

import html

from rendering.layout import (
    Flourish,
    Frame,
    LogoSlot,
    Ornament,
    RenderSpec,
    Rule,
    Seal,
    TextRegion,
)

# Corner ornaments, drawn in a 100x100 box and scaled to the ornament size
_ORNAMENT_PATHS = {
    "top-left": ("M 0 50 Q 10 10, 50 0 L 50 10 Q 15 15, 10 50 Z", (20, 20)),
    "top-right": ("M 100 50 Q 90 10, 50 0 L 50 10 Q 85 15, 90 50 Z", (80, 20)),
    "bottom-left": ("M 0 50 Q 10 90, 50 100 L 50 90 Q 15 85, 10 50 Z", (20, 80)),
    "bottom-right": ("M 100 50 Q 90 90, 50 100 L 50 90 Q 85 85, 90 50 Z", (80, 80)),
}

# Flourish waves, drawn in a 400x40 box
_FLOURISH_PATHS = {
    "top": "M 0 20 Q 50 5, 100 20 T 200 20 T 300 20 T 400 20",
    "bottom": "M 0 20 Q 50 35, 100 20 T 200 20 T 300 20 T 400 20",
}


def _n(value: float) -> str:
    """Compact, deterministic number formatting (64.0 -> 64)."""
    return f"{round(value, 2):g}"


def _attr(value: str) -> str:
    return html.escape(value, quote=True)


def _frame_svg(frame: Frame) -> str:
    return (
        f'<rect x="{_n(frame.x)}" y="{_n(frame.y)}" width="{_n(frame.width)}" '
        f'height="{_n(frame.height)}" rx="{_n(frame.radius)}" fill="none" '
        f'stroke="{_attr(frame.stroke)}" stroke-width="{_n(frame.stroke_width)}" '
        f'opacity="{_n(frame.opacity)}"/>'
    )


def _ornament_svg(ornament: Ornament) -> str:
    path, (cx, cy) = _ORNAMENT_PATHS[ornament.corner]
    scale = ornament.size / 100
    return (
        f'<g transform="translate({_n(ornament.x)} {_n(ornament.y)}) '
        f'scale({_n(scale)})" fill="{_attr(ornament.color)}" '
        f'opacity="{_n(ornament.opacity)}">'
        f'<path d="{path}"/><circle cx="{cx}" cy="{cy}" r="4"/></g>'
    )


def _flourish_svg(flourish: Flourish) -> str:
    color = _attr(flourish.color)
    return (
        f'<g transform="translate({_n(flourish.x)} {_n(flourish.y)}) '
        f'scale({_n(flourish.width / 400)} {_n(flourish.height / 40)})" '
        f'opacity="{_n(flourish.opacity)}">'
        f'<path d="{_FLOURISH_PATHS[flourish.position]}" fill="none" '
        f'stroke="{color}" stroke-width="2"/>'
        f'<circle cx="200" cy="20" r="5" fill="{color}"/>'
        f'<circle cx="100" cy="20" r="3" fill="{color}" opacity="0.6"/>'
        f'<circle cx="300" cy="20" r="3" fill="{color}" opacity="0.6"/></g>'
    )


def _rule_svg(rule: Rule) -> str:
    return (
        f'<line x1="{_n(rule.x)}" y1="{_n(rule.y)}" x2="{_n(rule.x + rule.width)}" '
        f'y2="{_n(rule.y)}" stroke="{_attr(rule.stroke)}" '
        f'stroke-width="{_n(rule.stroke_width)}"/>'
    )


def _seal_svg(seal: Seal) -> str:
    color = _attr(seal.color)
    label_size = seal.radius * 0.28
    return (
        f'<g><circle cx="{_n(seal.cx)}" cy="{_n(seal.cy)}" r="{_n(seal.radius)}" '
        f'fill="{color}"/>'
        f'<circle cx="{_n(seal.cx)}" cy="{_n(seal.cy)}" '
        f'r="{_n(seal.radius * 0.82)}" fill="none" stroke="#ffffff" '
        f'stroke-width="{_n(seal.radius * 0.04)}"/>'
        f'<text x="{_n(seal.cx)}" y="{_n(seal.cy + label_size * 0.35)}" '
        f'text-anchor="middle" font-family="Georgia, serif" font-weight="bold" '
        f'font-size="{_n(label_size)}" fill="#ffffff">'
        f"{html.escape(seal.label)}</text></g>"
    )


def _logo_svg(logo: LogoSlot, href: str) -> str:
    return (
        f'<image x="{_n(logo.x)}" y="{_n(logo.y)}" width="{_n(logo.width)}" '
        f'height="{_n(logo.height)}" href="{_attr(href)}" '
        f'preserveAspectRatio="xMidYMid meet"/>'
    )


def _text_svg(region: TextRegion) -> str:
    attrs = [
        f'x="{_n(region.x)}"',
        f'y="{_n(region.y)}"',
        f'font-family="{_attr(region.font_family)}"',
        f'font-size="{_n(region.font_size)}"',
        f'fill="{_attr(region.color)}"',
        f'text-anchor="{region.anchor}"',
    ]
    if region.weight != "normal":
        attrs.append(f'font-weight="{region.weight}"')
    if region.style != "normal":
        attrs.append(f'font-style="{region.style}"')
    if region.letter_spacing:
        attrs.append(f'letter-spacing="{_n(region.letter_spacing)}"')

    spans = []
    for index, line in enumerate(region.lines):
        dy = "0" if index == 0 else _n(region.line_height)
        spans.append(
            f'<tspan x="{_n(region.x)}" dy="{dy}">{html.escape(line)}</tspan>'
        )
    return f'<text data-role="{region.role}" {" ".join(attrs)}>{"".join(spans)}</text>'


def render_spec_to_svg(
    spec: RenderSpec,
    width: float | None = None,
    logo_href: str | None = None,
) -> str:
    """Draw a RenderSpec as a standalone SVG document.

    Args:
        spec: Layout to draw, usually at canonical size
        width: Output width in pixels; the layout is scaled uniformly
        logo_href: Image URL or data URI for the logo slot; the slot is left
            empty when not given

    Returns:
        SVG content as a string
    """
    if width is not None and width != spec.width:
        spec = spec.scaled(width)

    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<svg xmlns="http://www.w3.org/2000/svg" '
        f'viewBox="0 0 {_n(spec.width)} {_n(spec.height)}" '
        f'width="{_n(spec.width)}" height="{_n(spec.height)}">',
        f'<rect width="{_n(spec.width)}" height="{_n(spec.height)}" '
        f'fill="{_attr(spec.background)}"/>',
    ]
    parts.extend(_frame_svg(f) for f in spec.frames)
    parts.extend(_ornament_svg(o) for o in spec.ornaments)
    parts.extend(_flourish_svg(f) for f in spec.flourishes)
    parts.extend(_rule_svg(r) for r in spec.rules)
    if spec.seal is not None:
        parts.append(_seal_svg(spec.seal))
    if spec.logo is not None and logo_href:
        parts.append(_logo_svg(spec.logo, logo_href))
    parts.extend(_text_svg(t) for t in spec.texts)
    parts.append("</svg>")
    return "\n".join(parts)


def svg_to_pdf(svg_content: str) -> bytes:
    """Convert SVG string to PDF bytes using CairoSVG.

    Raises:
        RuntimeError: If cairo library is not installed on the system
    """
    try:
        import cairosvg
    except OSError as e:
        if "cairo" in str(e).lower():
            raise RuntimeError(
                "PDF generation requires the Cairo library. "
                "On macOS: brew install cairo. "
                "On Ubuntu/Debian: apt-get install libcairo2-dev. "
                "On Alpine: apk add cairo-dev."
            ) from e
        raise

    return cairosvg.svg2pdf(bytestring=svg_content.encode("utf-8"))


def svg_to_png(svg_content: str, *, scale: float = 2.0) -> bytes:
    """Convert SVG string to PNG bytes using CairoSVG.

    The default 2x scale keeps text sharp when the image is downscaled for
    display or printed.

    Raises:
        RuntimeError: If cairo library is not installed on the system
    """
    try:
        import cairosvg
    except OSError as e:
        if "cairo" in str(e).lower():
            raise RuntimeError(
                "PNG generation requires the Cairo library. "
                "On macOS: brew install cairo. "
                "On Ubuntu/Debian: apt-get install libcairo2-dev. "
                "On Alpine: apk add cairo-dev."
            ) from e
        raise

    return cairosvg.svg2png(bytestring=svg_content.encode("utf-8"), scale=scale)
