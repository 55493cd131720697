# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Normalization layer implementations.

Importing this package registers all built-in Norm types with the registry.
"""

from dinofeat.model.layers.norm.layernorm import LayerNorm
from dinofeat.model.layers.norm.rmsnorm import RMSNorm

__all__ = ["LayerNorm", "RMSNorm"]
