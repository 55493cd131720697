# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
LayerNorm, registered as "layernorm".

The pretrained DINOv3 checkpoints use affine LayerNorm everywhere (block
pre-norms and the final norms). This subclass only pins the constructor to
the ``(dim, eps=...)`` signature every registered norm shares.
"""

import torch.nn as nn

from dinofeat.model.registry import register_norm


class LayerNorm(nn.LayerNorm):
    def __init__(self, dim: int, eps: float = 1e-5) -> None:
        super().__init__(dim, eps=eps)


register_norm("layernorm", LayerNorm)
