# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Feed-forward layer implementations.

Importing this package registers all built-in FFN types with the registry.
"""

from dinofeat.model.layers.ffn.mlp import MLP
from dinofeat.model.layers.ffn.swiglu import SwiGLUFFN

__all__ = ["MLP", "SwiGLUFFN"]
