# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Patch embedding for dinofeat.

Projects non-overlapping ``patch_size`` × ``patch_size`` image patches to
embedding vectors with a strided convolution (kernel = stride = patch size,
no padding).

Inputs are channels-last (B, H, W, C), the layout the image processor
produces. The kernel is stored in PyTorch's (D, C, p, p) layout so that
pretrained state dicts load without any transposition.
"""

from typing import Optional

import torch
import torch.nn as nn
import torch.nn.functional as F


class PatchEmbed(nn.Module):
    """
    Strided-convolution patch projection.

    Args:
        img_size: Nominal square input size, used for ``num_patches``.
        patch_size: Patch edge in pixels.
        in_channels: Input channel count.
        embed_dim: Output embedding dimension.
        norm_layer: Optional normalization applied to the flattened tokens.
        flatten_embedding: Return (B, P, D) instead of (B, H/p, W/p, D).
    """

    def __init__(
        self,
        img_size: int = 224,
        patch_size: int = 16,
        in_channels: int = 3,
        embed_dim: int = 768,
        norm_layer: Optional[nn.Module] = None,
        flatten_embedding: bool = True,
    ) -> None:
        super().__init__()
        self.img_size = img_size
        self.patch_size = patch_size
        self.in_channels = in_channels
        self.embed_dim = embed_dim
        self.flatten_embedding = flatten_embedding
        self.patches_resolution = (img_size // patch_size, img_size // patch_size)
        self.num_patches = self.patches_resolution[0] * self.patches_resolution[1]

        self.weight = nn.Parameter(torch.empty(embed_dim, in_channels, patch_size, patch_size))
        self.bias = nn.Parameter(torch.zeros(embed_dim))
        self.norm = norm_layer

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Embed patches.

        Args:
            x: Image tensor of shape (batch, height, width, channels).

        Returns:
            (batch, height // p, width // p, embed_dim), or
            (batch, num_patches, embed_dim) when flattening.

        Raises:
            ValueError: If the input is not 4-D, has the wrong channel count,
                or its spatial size is not divisible by the patch size.
        """
        if x.dim() != 4:
            raise ValueError(f"Expected (B, H, W, C) input, got shape {tuple(x.shape)}")
        batch, height, width, channels = x.shape
        if channels != self.in_channels:
            raise ValueError(f"Expected {self.in_channels} input channels, got {channels}")
        if height % self.patch_size != 0 or width % self.patch_size != 0:
            raise ValueError(
                f"Input size {height}x{width} is not divisible by patch size {self.patch_size}"
            )

        x = F.conv2d(
            x.permute(0, 3, 1, 2),
            self.weight,
            self.bias,
            stride=self.patch_size,
        )
        grid_h, grid_w = x.shape[-2], x.shape[-1]
        x = x.flatten(2).transpose(1, 2)

        if self.norm is not None:
            x = self.norm(x)

        if not self.flatten_embedding:
            x = x.reshape(batch, grid_h, grid_w, self.embed_dim)
        return x
