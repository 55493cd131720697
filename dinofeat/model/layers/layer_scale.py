# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Per-channel residual scaling (LayerScale).

Each residual branch output is multiplied elementwise by a learned vector
``lambda1`` before being added back. Pretrained weights overwrite the
initial value; it only matters for freshly built models.
"""

import torch
import torch.nn as nn


class LayerScale(nn.Module):
    """
    Args:
        dim: Channel count.
        init_values: Initial value broadcast over all channels.
    """

    def __init__(self, dim: int, init_values: float = 1e-5) -> None:
        super().__init__()
        self.init_values = init_values
        self.lambda1 = nn.Parameter(torch.full((dim,), float(init_values)))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x * self.lambda1
