# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for per-channel pixel normalization.
"""

import pytest
import torch

from dinofeat.processing.normalize import IMAGENET_STATS, NormalizationStats, normalize_pixels


class TestNormalizePixels:
    """Tests for converting uint8 pixels to normalized floats."""

    def test_gray_128(self) -> None:
        """Mid-gray maps to (128/255 - mean) / std per channel."""
        pixels = torch.full((2, 2, 3), 128, dtype=torch.uint8)
        result = normalize_pixels(pixels)
        expected = [
            (128 / 255 - mean) / std for mean, std in zip(IMAGENET_STATS.mean, IMAGENET_STATS.std)
        ]
        for channel in range(3):
            assert torch.allclose(
                result[..., channel], torch.full((2, 2), expected[channel]), atol=1e-6
            )

    def test_extremes(self) -> None:
        """0 and 255 map to -1 and 1 with mean = std = 0.5."""
        stats = NormalizationStats(mean=(0.5, 0.5, 0.5), std=(0.5, 0.5, 0.5))
        pixels = torch.tensor([[[0, 255, 0]]], dtype=torch.uint8)
        assert normalize_pixels(pixels, stats).tolist() == [[[-1.0, 1.0, -1.0]]]

    def test_output_dtype_and_layout(self) -> None:
        """Output is float32 and keeps the HWC layout."""
        result = normalize_pixels(torch.zeros(5, 7, 3, dtype=torch.uint8))
        assert result.dtype == torch.float32
        assert result.shape == (5, 7, 3)

    def test_rejects_channels_first(self) -> None:
        with pytest.raises(ValueError, match="trailing channels"):
            normalize_pixels(torch.zeros(3, 4, 4, dtype=torch.uint8)[:, :, :2])


class TestNormalizationStats:
    """Tests for statistics validation."""

    def test_wrong_length(self) -> None:
        """Stats must have exactly three channels."""
        with pytest.raises(ValueError, match="3-channel"):
            NormalizationStats(mean=(0.5, 0.5), std=(0.5, 0.5, 0.5))  # type: ignore[arg-type]

    def test_non_positive_std(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            NormalizationStats(mean=(0.5, 0.5, 0.5), std=(0.5, 0.0, 0.5))
