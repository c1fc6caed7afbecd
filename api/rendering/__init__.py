"""Rendering module for presentation concerns.

- Certificate layout (template + resolved text -> RenderSpec)
- SVG drawing of a RenderSpec
- PDF/PNG conversion

This separates presentation concerns from business logic in services.
"""

from rendering.certificates import render_spec_to_svg, svg_to_pdf, svg_to_png
from rendering.layout import RenderSpec, render

__all__ = [
    "RenderSpec",
    "render",
    "render_spec_to_svg",
    "svg_to_pdf",
    "svg_to_png",
]
