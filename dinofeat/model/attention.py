# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Multi-head self-attention for dinofeat.

The attention computation:
  1. Project input to Q, K, V with independent linear maps
  2. Apply 2D RoPE to the patch-token suffix of Q and K
  3. Scaled dot-product attention over all tokens (no mask)
  4. Project output back to model dimension

The attention probability tensor is only materialized when the caller asks
for it. Otherwise PyTorch's fused ``scaled_dot_product_attention`` kernel
is used.
"""

from typing import Optional

import torch
import torch.nn as nn
import torch.nn.functional as F

from dinofeat.model.layers.rotary import apply_rotary_emb


class SelfAttention(nn.Module):
    """
    Multi-head self-attention with selective rotary application.

    Args:
        dim: Model hidden dimension.
        num_heads: Number of attention heads.
        query_bias: Bias on the query projection.
        key_bias: Bias on the key projection.
        value_bias: Bias on the value projection.
        proj_bias: Bias on the output projection.
    """

    def __init__(
        self,
        dim: int,
        num_heads: int = 8,
        query_bias: bool = True,
        key_bias: bool = False,
        value_bias: bool = True,
        proj_bias: bool = True,
    ) -> None:
        super().__init__()
        if dim % num_heads != 0:
            raise ValueError(f"dim ({dim}) must be divisible by num_heads ({num_heads})")
        self.dim = dim
        self.num_heads = num_heads
        self.head_dim = dim // num_heads
        self.scale = self.head_dim**-0.5

        self.q_proj = nn.Linear(dim, dim, bias=query_bias)
        self.k_proj = nn.Linear(dim, dim, bias=key_bias)
        self.v_proj = nn.Linear(dim, dim, bias=value_bias)
        self.o_proj = nn.Linear(dim, dim, bias=proj_bias)

    def _split_heads(self, x: torch.Tensor) -> torch.Tensor:
        batch_size, seq_len, _ = x.shape
        return x.view(batch_size, seq_len, self.num_heads, self.head_dim).transpose(1, 2)

    def forward(
        self,
        x: torch.Tensor,
        rope: Optional[tuple[torch.Tensor, torch.Tensor]] = None,
        output_attentions: bool = False,
    ) -> tuple[torch.Tensor, Optional[torch.Tensor]]:
        """
        Compute self-attention.

        Args:
            x: Input tensor of shape (batch, seq_len, dim).
            rope: Optional (cos, sin) tables of shape (num_patches, head_dim).
            output_attentions: Also return the attention probabilities.

        Returns:
            Tuple of the output (batch, seq_len, dim) and, when requested, the
            attention probabilities (batch, num_heads, seq_len, seq_len).
        """
        batch_size, seq_len, _ = x.shape

        xq = self._split_heads(self.q_proj(x))
        xk = self._split_heads(self.k_proj(x))
        xv = self._split_heads(self.v_proj(x))

        if rope is not None:
            cos, sin = rope
            xq, xk = apply_rotary_emb(xq, xk, cos, sin)

        attn_weights = None
        if output_attentions:
            scores = torch.matmul(xq, xk.transpose(-2, -1)) * self.scale
            attn_weights = torch.softmax(scores, dim=-1)
            output = torch.matmul(attn_weights, xv)
        else:
            output = F.scaled_dot_product_attention(xq, xk, xv, scale=self.scale)

        output = output.transpose(1, 2).reshape(batch_size, seq_len, self.dim)
        return self.o_proj(output), attn_weights
