# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
SwiGLU feed-forward network, registered as "swiglu".

Structure: down_proj(silu(gate_proj(x)) * up_proj(x)). Used by the "plus"
DINOv3 variants (ViT-S+/16, ViT-H+/16).
"""

from typing import Optional

import torch
import torch.nn as nn
import torch.nn.functional as F

from dinofeat.model.registry import register_ffn


class SwiGLUFFN(nn.Module):
    """
    SwiGLU-activated feedforward network.

    The gate branch goes through SiLU and multiplies the up branch
    elementwise before the down projection.

    Args:
        dim: Input (and default output) dimension.
        hidden_dim: Hidden width. Defaults to ``dim``.
        out_dim: Output width. Defaults to ``dim``.
        bias: Whether the three projections carry a bias.
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

        self.gate_proj = nn.Linear(dim, hidden_dim, bias=bias)
        self.up_proj = nn.Linear(dim, hidden_dim, bias=bias)
        self.down_proj = nn.Linear(hidden_dim, out_dim, bias=bias)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Apply SwiGLU feedforward.

        Args:
            x: Input tensor of shape (batch, seq_len, dim).

        Returns:
            Output tensor of shape (batch, seq_len, out_dim).
        """
        return self.down_proj(F.silu(self.gate_proj(x)) * self.up_proj(x))


register_ffn("swiglu", SwiGLUFFN)
