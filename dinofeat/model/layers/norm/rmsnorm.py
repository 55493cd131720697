# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
RMSNorm, registered as "rmsnorm".

Normalizes by the root mean square of the activations without centering:
  x * weight / sqrt(mean(x^2) + eps)
"""

import torch
import torch.nn as nn

from dinofeat.model.registry import register_norm


class RMSNorm(nn.Module):
    """
    Root Mean Square Layer Normalization.

    Args:
        dim: Feature dimension to normalize over.
        eps: Small constant for numerical stability.
    """

    def __init__(self, dim: int, eps: float = 1e-5) -> None:
        super().__init__()
        self.eps = eps
        self.weight = nn.Parameter(torch.ones(dim))

    def _norm(self, x: torch.Tensor) -> torch.Tensor:
        """Compute RMS normalization without the learned scale."""
        return x * torch.rsqrt(x.pow(2).mean(dim=-1, keepdim=True) + self.eps)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        output = self._norm(x.float()).type_as(x)
        return output * self.weight


register_norm("rmsnorm", RMSNorm)
