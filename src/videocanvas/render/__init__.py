"""
Render Module
=============

    - Surface: RGBA pixel surface with source-over / source-in drawing
    - MaskCompositor: Luminance-mask compositing of a base frame
"""

from videocanvas.render.compositor import MaskCompositor, draw_frame
from videocanvas.render.surface import SOURCE_IN, SOURCE_OVER, Surface


__all__ = [
    "MaskCompositor",
    "SOURCE_IN",
    "SOURCE_OVER",
    "Surface",
    "draw_frame",
]
