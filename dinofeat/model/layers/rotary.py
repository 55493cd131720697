# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
2D Rotary Positional Embedding (RoPE) for dinofeat.

Patch tokens carry no additive position embedding. Instead, queries and keys
of the patch tokens are rotated by angles proportional to the patch's
(row, column) coordinate on the patch grid. Class and register tokens are
never rotated.

Layout of one head (head_dim = D):
  - D/4 periods are fixed at construction.
  - Each patch has 2 coordinates (row, col) in [-1, 1].
  - angle[n, axis, j] = 2π * coord[n, axis] / period[j] gives D/2 angles,
    tiled twice to D to match the split-half ("rotate_half") convention.

The tables depend on the patch grid, so they are recomputed for every
forward call. Inputs of different resolutions never share a table.
"""

import math
from typing import Optional

import torch
import torch.nn as nn

from dinofeat.model.config import NORMALIZE_COORDS_MODES


class RopePositionEmbedding(nn.Module):
    """
    Axial 2D rotary position encoder with no learnable weights.

    Two parametrizations of the periods are supported: a geometric ``base``
    (``period[j] = base ** (2j / (D/2))``), or a ``min_period`` /
    ``max_period`` pair spaced geometrically between the two.

    Args:
        embed_dim: Model hidden dimension.
        num_heads: Number of attention heads.
        base: Rotary base.
        min_period: Smallest period (with max_period, instead of base).
        max_period: Largest period (with min_period, instead of base).
        normalize_coords: "separate", "max" or "min".
        rescale_coords: Optional multiplier on the [-1, 1] coordinates.
        dtype: Precision of the periods and of the returned tables.

    Raises:
        ValueError: If embed_dim is not divisible by 4 * num_heads, if the
            period parametrization is ambiguous, or the coordinate
            normalization mode is unknown.
    """

    def __init__(
        self,
        embed_dim: int,
        num_heads: int,
        base: Optional[float] = 100.0,
        min_period: Optional[float] = None,
        max_period: Optional[float] = None,
        normalize_coords: str = "separate",
        rescale_coords: Optional[float] = None,
        dtype: torch.dtype = torch.float32,
    ) -> None:
        super().__init__()
        if embed_dim % (4 * num_heads) != 0:
            raise ValueError(
                f"embed_dim ({embed_dim}) must be divisible by 4 * num_heads ({4 * num_heads})"
            )
        both_periods = min_period is not None and max_period is not None
        if (base is None and not both_periods) or (base is not None and both_periods):
            raise ValueError("Either `base` or `min_period` + `max_period` must be provided")
        if normalize_coords not in NORMALIZE_COORDS_MODES:
            raise ValueError(
                f"Unknown normalize_coords '{normalize_coords}'. "
                f"Available: {list(NORMALIZE_COORDS_MODES)}"
            )

        self.head_dim = embed_dim // num_heads
        self.base = base
        self.min_period = min_period
        self.max_period = max_period
        self.normalize_coords = normalize_coords
        self.rescale_coords = rescale_coords
        self.dtype = dtype

        self.register_buffer("periods", self._compute_periods(), persistent=False)

    def _compute_periods(self) -> torch.Tensor:
        quarter = self.head_dim // 4
        if self.base is not None:
            exponents = 2 * torch.arange(quarter, dtype=self.dtype) / (self.head_dim // 2)
            return torch.tensor(self.base, dtype=self.dtype) ** exponents

        ratio = self.max_period / self.min_period
        exponents = torch.linspace(0, 1, quarter, dtype=self.dtype)
        periods = ratio**exponents  # [1, max/min]
        periods = periods / ratio  # [min/max, 1]
        return periods * self.max_period  # [min, max]

    def _coords(self, height: int, width: int, device: torch.device) -> tuple[torch.Tensor, torch.Tensor]:
        coords_h = torch.arange(0.5, height, dtype=self.dtype, device=device)
        coords_w = torch.arange(0.5, width, dtype=self.dtype, device=device)
        if self.normalize_coords == "max":
            denom_h = denom_w = max(height, width)
        elif self.normalize_coords == "min":
            denom_h = denom_w = min(height, width)
        else:
            denom_h, denom_w = height, width
        return coords_h / denom_h, coords_w / denom_w

    def forward(self, height: int, width: int) -> tuple[torch.Tensor, torch.Tensor]:
        """
        Compute the rotation tables for an ``height`` × ``width`` patch grid.

        Args:
            height: Patch-grid rows.
            width: Patch-grid columns.

        Returns:
            (cos, sin), each of shape (height * width, head_dim), rows in
            row-major patch order.
        """
        device = self.periods.device
        coords_h, coords_w = self._coords(height, width, device)

        # (H, W, 2) grid of (row, col), flattened row-major to (HW, 2)
        coords = torch.stack(torch.meshgrid(coords_h, coords_w, indexing="ij"), dim=-1)
        coords = coords.reshape(-1, 2)
        coords = 2.0 * coords - 1.0
        if self.rescale_coords is not None:
            coords = coords * self.rescale_coords

        angles = 2 * math.pi * coords[:, :, None] / self.periods[None, None, :]
        angles = angles.flatten(1, 2)  # (HW, D/2)
        angles = angles.tile(2)  # (HW, D)

        return torch.cos(angles), torch.sin(angles)


def rotate_half(x: torch.Tensor) -> torch.Tensor:
    """Swap the two halves of the last axis and negate the new first half."""
    half = x.shape[-1] // 2
    x1 = x[..., :half]
    x2 = x[..., half:]
    return torch.cat((-x2, x1), dim=-1)


def _rope_apply(x: torch.Tensor, cos: torch.Tensor, sin: torch.Tensor) -> torch.Tensor:
    return (x * cos) + (rotate_half(x) * sin)


def apply_rotary_emb(
    xq: torch.Tensor,
    xk: torch.Tensor,
    cos: torch.Tensor,
    sin: torch.Tensor,
) -> tuple[torch.Tensor, torch.Tensor]:
    """
    Rotate the trailing patch positions of the query and key tensors.

    The first ``N - P`` positions (class and register tokens) pass through
    unchanged. The rotation runs in the table's dtype and the result is cast
    back to the input dtype.

    Args:
        xq: Queries of shape (batch, n_heads, seq_len, head_dim).
        xk: Keys of shape (batch, n_heads, seq_len, head_dim).
        cos: Cosine table of shape (num_patches, head_dim).
        sin: Sine table of shape (num_patches, head_dim).

    Returns:
        Tuple of (rotated_q, rotated_k) with the input shapes and dtypes.

    Raises:
        ValueError: If the table covers more positions than the sequence.
    """
    seq_len = xq.shape[-2]
    prefix = seq_len - sin.shape[-2]
    if prefix < 0:
        raise ValueError(
            f"Rotary table has {sin.shape[-2]} positions but the sequence only has {seq_len}"
        )

    q = xq.to(sin.dtype)
    k = xk.to(sin.dtype)

    q = torch.cat((q[..., :prefix, :], _rope_apply(q[..., prefix:, :], cos, sin)), dim=-2)
    k = torch.cat((k[..., :prefix, :], _rope_apply(k[..., prefix:, :], cos, sin)), dim=-2)

    return q.to(xq.dtype), k.to(xk.dtype)
