# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Plain two-layer feed-forward network, registered as "mlp".

Structure: Linear → GELU → Linear. This is the FFN of the ViT-S/B/L DINOv3
checkpoints. Parameter names (``up_proj``, ``down_proj``) match the
pretrained state dicts.
"""

from typing import Optional

import torch
import torch.nn as nn
import torch.nn.functional as F

from dinofeat.model.registry import register_ffn


class MLP(nn.Module):
    """
    GELU-activated feed-forward network.

    Args:
        dim: Input (and default output) dimension.
        hidden_dim: Hidden width. Defaults to ``dim``.
        out_dim: Output width. Defaults to ``dim``.
        bias: Whether both projections carry a bias.
    """

    def __init__(
        self,
        dim: int,
        hidden_dim: Optional[int] = None,
        out_dim: Optional[int] = None,
        bias: bool = True,
    ) -> None:
        super().__init__()
        hidden_dim = hidden_dim or dim
        out_dim = out_dim or dim

        self.up_proj = nn.Linear(dim, hidden_dim, bias=bias)
        self.down_proj = nn.Linear(hidden_dim, out_dim, bias=bias)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        # exact (erf) GELU, matching the reference checkpoints
        return self.down_proj(F.gelu(self.up_proj(x)))


register_ffn("mlp", MLP)
