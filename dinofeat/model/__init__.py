# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
dinofeat model architecture package.

DINOv3 vision transformer for dense feature extraction:
  - Strided-convolution patch embedding (channels-last input)
  - Class, register and mask tokens
  - Axial 2D RoPE on patch tokens only
  - Pre-norm blocks with LayerScale
  - GELU MLP or SwiGLU feedforward
  - Tied or untied final class/patch norms
"""
