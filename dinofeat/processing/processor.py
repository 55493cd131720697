# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Image preprocessing for dinofeat.

Pipeline:
  source (PIL image, file path or uint8 tensor)
    → 8-bit RGB (H, W, 3)
    → Pillow-exact bilinear resize to size × size
    → per-channel normalization
    → float32 (1, size, size, 3)

The output is channels-last, the layout the patch embedding expects.
"""

from pathlib import Path
from typing import Union

import torch
from PIL import Image, UnidentifiedImageError

from dinofeat.processing.exceptions import InvalidImageError, PixelDataUnavailableError
from dinofeat.processing.normalize import IMAGENET_STATS, NormalizationStats, normalize_pixels
from dinofeat.processing.resample import pixels_from_rgb_bytes, resize_bilinear

ImageSource = Union[Image.Image, str, Path, torch.Tensor]


class ImageProcessor:
    """
    Resize and normalize images for the backbone.

    Args:
        size: Edge of the square output in pixels.
        stats: Channel statistics used for normalization.
    """

    def __init__(self, size: int = 224, stats: NormalizationStats = IMAGENET_STATS) -> None:
        if size <= 0:
            raise ValueError(f"size must be positive, got {size}")
        self.size = size
        self.stats = stats

    def load_rgb(self, source: ImageSource) -> torch.Tensor:
        """
        Decode a source into an 8-bit RGB pixel tensor.

        Any Pillow mode (grayscale, palette, RGBA, 16-bit) is converted to
        RGB first.

        Args:
            source: A PIL image, an image file path, or a uint8 tensor of
                shape (height, width, 3).

        Returns:
            uint8 tensor of shape (height, width, 3).

        Raises:
            InvalidImageError: If the source cannot be opened or decoded.
            PixelDataUnavailableError: If the decoded image yields no
                usable pixel buffer.
        """
        if isinstance(source, torch.Tensor):
            if source.dtype != torch.uint8 or source.dim() != 3 or source.shape[-1] != 3:
                raise InvalidImageError(
                    f"Expected a uint8 (H, W, 3) tensor, got {source.dtype} "
                    f"with shape {tuple(source.shape)}"
                )
            if source.shape[0] == 0 or source.shape[1] == 0:
                raise PixelDataUnavailableError(
                    f"Image has no pixels ({source.shape[1]}x{source.shape[0]})"
                )
            return source

        if isinstance(source, (str, Path)):
            try:
                with Image.open(source) as opened:
                    image = opened.convert("RGB")
            except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as exc:
                raise InvalidImageError(f"Cannot decode image '{source}': {exc}") from exc
        elif isinstance(source, Image.Image):
            try:
                image = source.convert("RGB")
            except (ValueError, OSError) as exc:
                raise InvalidImageError(f"Cannot convert image to RGB: {exc}") from exc
        else:
            raise InvalidImageError(f"Unsupported image source type: {type(source).__name__}")

        width, height = image.size
        if width == 0 or height == 0:
            raise PixelDataUnavailableError(f"Image has no pixels ({width}x{height})")
        try:
            return pixels_from_rgb_bytes(image.tobytes(), width, height)
        except ValueError as exc:
            raise PixelDataUnavailableError(str(exc)) from exc

    def preprocess_hwc(self, source: ImageSource) -> torch.Tensor:
        """
        Resize and normalize one image.

        Returns:
            float32 tensor of shape (size, size, 3).
        """
        pixels = self.load_rgb(source)
        resized = resize_bilinear(pixels, self.size)
        return normalize_pixels(resized, self.stats)

    def __call__(self, source: ImageSource) -> torch.Tensor:
        """Preprocess one image into a batch of one, (1, size, size, 3)."""
        return self.preprocess_hwc(source).unsqueeze(0)
