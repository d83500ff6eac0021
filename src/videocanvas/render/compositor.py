"""
Mask Compositor
===============

Alpha-cut compositing of a base frame through a grayscale mask frame.

Algorithm (luminance-as-alpha):
    1. Draw the mask frame, scaled to the target, into an offscreen surface
    2. Read the offscreen pixels back and copy each pixel's red channel
       into its alpha channel, then write them back
    3. Clear the target and draw the offscreen surface onto it
    4. Draw the base frame in "source-in" mode, so the base colour only
       survives where the mask is opaque
    5. Restore "source-over"

The caller owns both frames and releases them afterwards.
"""

import logging

from videocanvas.render.surface import SOURCE_IN, SOURCE_OVER, Surface
from videocanvas.stream.frame import DecodedFrame


logger = logging.getLogger(__name__)


class MaskCompositor:
    """
    Composites base + mask frames onto a target surface.

    Attributes:
        offscreen: Intermediate RGBA surface, sized to the target
    """

    def __init__(self, width: int, height: int, image_smoothing: bool = True) -> None:
        """
        Initialize compositor.

        Args:
            width: Target surface width
            height: Target surface height
            image_smoothing: Smoothing used when scaling the mask
        """
        self.offscreen = Surface(
            width,
            height,
            alpha=True,
            image_smoothing=image_smoothing,
        )

    def composite(
        self,
        base: DecodedFrame,
        mask: DecodedFrame,
        target: Surface,
    ) -> None:
        """
        Draw `base` onto `target` with alpha taken from `mask`.

        Args:
            base: Decoded base frame
            mask: Decoded mask frame aligned with `base`
            target: Destination surface, same size as the offscreen surface
        """
        if (target.width, target.height) != (self.offscreen.width, self.offscreen.height):
            raise ValueError(
                f"Target {target.width}x{target.height} does not match "
                f"compositor {self.offscreen.width}x{self.offscreen.height}"
            )
        if base.closed or mask.closed:
            raise ValueError(
                f"Cannot composite released frames (base={base.index}, mask={mask.index})"
            )

        self.offscreen.clear_rect()
        self.offscreen.draw_image(mask.pixels)
        mask_data = self.offscreen.get_image_data()
        mask_data[..., 3] = mask_data[..., 0]
        self.offscreen.put_image_data(mask_data)

        target.clear_rect()
        target.draw_image(self.offscreen.pixels)
        target.composite_operation = SOURCE_IN
        try:
            target.draw_image(base.pixels)
        finally:
            target.composite_operation = SOURCE_OVER


def draw_frame(frame: DecodedFrame, target: Surface) -> None:
    """Draw an unmasked frame scaled onto `target`."""
    if frame.closed:
        raise ValueError(f"Cannot draw released frame {frame.index}")
    target.draw_image(frame.pixels)
