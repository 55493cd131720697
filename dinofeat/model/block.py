# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Transformer block for dinofeat.

Each block contains, in this fixed order:
  1. Norm
  2. Self-Attention (with 2D RoPE on patch tokens)
  3. LayerScale + residual
  4. Norm
  5. FeedForward (tagged variant)
  6. LayerScale + residual

Norm and feed-forward implementations are resolved from the config through
the factory. The block itself never branches on layer types.
"""

from typing import Optional

import torch
import torch.nn as nn

from dinofeat.model.attention import SelfAttention
from dinofeat.model.config import VisionTransformerConfig
from dinofeat.model.factory import build_ffn, build_norm
from dinofeat.model.layers.layer_scale import LayerScale


class SelfAttentionBlock(nn.Module):
    """
    Single pre-norm transformer block with layer-scaled residuals.

    The structure is:
      x = x + layer_scale1(attention(norm1(x)))
      x = x + layer_scale2(mlp(norm2(x)))

    Args:
        config: VisionTransformerConfig with all architecture parameters.
    """

    def __init__(self, config: VisionTransformerConfig) -> None:
        super().__init__()
        dim = config.embed_dim

        self.norm1 = build_norm(config, dim)
        self.attention = SelfAttention(
            dim=dim,
            num_heads=config.num_heads,
            query_bias=config.query_bias,
            key_bias=config.key_bias,
            value_bias=config.value_bias,
            proj_bias=config.proj_bias,
        )
        self.layer_scale1 = LayerScale(dim, init_values=config.layerscale_value)

        self.norm2 = build_norm(config, dim)
        self.mlp = build_ffn(config)
        self.layer_scale2 = LayerScale(dim, init_values=config.layerscale_value)

    def forward(
        self,
        x: torch.Tensor,
        rope: Optional[tuple[torch.Tensor, torch.Tensor]] = None,
        output_attentions: bool = False,
    ) -> tuple[torch.Tensor, Optional[torch.Tensor]]:
        """
        Forward pass through the block.

        Args:
            x: Input tensor of shape (batch, seq_len, dim).
            rope: Rotary (cos, sin) tables for the patch tokens.
            output_attentions: Also return this block's attention weights.

        Returns:
            Tuple of the output (batch, seq_len, dim) and the attention
            weights, or None when not requested.
        """
        attn_out, attn_weights = self.attention(
            self.norm1(x), rope=rope, output_attentions=output_attentions
        )
        x = x + self.layer_scale1(attn_out)
        x = x + self.layer_scale2(self.mlp(self.norm2(x)))
        return x, attn_weights
