# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Token assembly for dinofeat.

Turns an image batch into the transformer input sequence:

  [cls, register_1 .. register_R, patch_(0,0), patch_(0,1), ..., patch_(h-1,w-1)]

Index 0 is always the class token, indices [1, R] the registers, and the
remaining P = h * w positions the patches in row-major order. Every
downstream split (rotary suffix, final norms, feature outputs) relies on
this layout.
"""

from typing import Optional

import torch
import torch.nn as nn

from dinofeat.model.config import VisionTransformerConfig
from dinofeat.model.layers.patch_embed import PatchEmbed


class Embeddings(nn.Module):
    """
    Patch projection plus learned class, register and mask tokens.

    Attribute names mirror the pretrained state-dict keys
    (``embeddings.cls_token``, ``embeddings.register_tokens``, ...).

    Args:
        config: VisionTransformerConfig with patch and register settings.
    """

    def __init__(self, config: VisionTransformerConfig) -> None:
        super().__init__()
        self.num_register_tokens = config.num_register_tokens
        self.patch_size = config.patch_size

        self.cls_token = nn.Parameter(torch.zeros(1, 1, config.embed_dim))
        self.mask_token = nn.Parameter(torch.zeros(1, 1, config.embed_dim))
        if config.num_register_tokens > 0:
            self.register_tokens = nn.Parameter(
                torch.zeros(1, config.num_register_tokens, config.embed_dim)
            )
        else:
            self.register_parameter("register_tokens", None)

        self.patch_embeddings = PatchEmbed(
            img_size=config.img_size,
            patch_size=config.patch_size,
            in_channels=config.in_channels,
            embed_dim=config.embed_dim,
            flatten_embedding=True,
        )

    def forward(
        self,
        pixel_values: torch.Tensor,
        masks: Optional[torch.Tensor] = None,
    ) -> tuple[torch.Tensor, int, int]:
        """
        Assemble the token sequence.

        Args:
            pixel_values: Images of shape (batch, height, width, channels).
            masks: Optional boolean tensor (batch, num_patches). True marks
                patches whose embedding is replaced by ``mask_token``.

        Returns:
            Tuple of (tokens, grid_h, grid_w) with tokens of shape
            (batch, 1 + R + grid_h * grid_w, embed_dim).

        Raises:
            ValueError: If the mask shape does not match the patch sequence.
        """
        batch_size, height, width, _ = pixel_values.shape
        patches = self.patch_embeddings(pixel_values)
        grid_h, grid_w = height // self.patch_size, width // self.patch_size

        if masks is not None:
            if masks.shape != patches.shape[:2]:
                raise ValueError(
                    f"Mask shape {tuple(masks.shape)} does not match patch sequence "
                    f"{tuple(patches.shape[:2])}"
                )
            mask_token = self.mask_token.to(patches.dtype)
            patches = torch.where(masks.unsqueeze(-1).bool(), mask_token, patches)

        prefix = [self.cls_token.expand(batch_size, -1, -1)]
        if self.register_tokens is not None:
            prefix.append(self.register_tokens.expand(batch_size, -1, -1))

        tokens = torch.cat([*prefix, patches], dim=1)
        return tokens, grid_h, grid_w
