# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Per-channel pixel normalization.

Maps each byte to ``(byte / 255 - mean[c]) / std[c]`` in float32, keeping the
channels-last (H, W, 3) layout the model consumes.
"""

from dataclasses import dataclass

import torch


@dataclass(frozen=True)
class NormalizationStats:
    """
    Per-channel mean and standard deviation, in [0, 1] pixel units.

    Raises:
        ValueError: If mean or std does not have exactly 3 entries, or a std
            entry is not positive.
    """

    mean: tuple[float, float, float]
    std: tuple[float, float, float]

    def __post_init__(self) -> None:
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ValueError(
                f"Expected 3-channel mean/std, got {len(self.mean)} and {len(self.std)}"
            )
        if any(s <= 0 for s in self.std):
            raise ValueError(f"std entries must be positive, got {self.std}")


IMAGENET_STATS = NormalizationStats(mean=(0.485, 0.456, 0.406), std=(0.229, 0.224, 0.225))


def normalize_pixels(
    pixels: torch.Tensor,
    stats: NormalizationStats = IMAGENET_STATS,
) -> torch.Tensor:
    """
    Normalize an 8-bit image.

    Args:
        pixels: uint8 tensor of shape (height, width, 3).
        stats: Channel statistics.

    Returns:
        float32 tensor of shape (height, width, 3).

    Raises:
        ValueError: If the input does not have 3 trailing channels.
    """
    if pixels.shape[-1] != 3:
        raise ValueError(f"Expected 3 trailing channels, got shape {tuple(pixels.shape)}")
    mean = torch.tensor(stats.mean, dtype=torch.float32)
    std = torch.tensor(stats.std, dtype=torch.float32)
    scaled = pixels.to(torch.float32) / 255.0
    return (scaled - mean) / std
