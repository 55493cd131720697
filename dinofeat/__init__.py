# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""dinofeat: DINOv3 vision transformer feature extraction in PyTorch."""

__version__ = "0.1.0"
