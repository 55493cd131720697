# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Layer implementations for dinofeat.

The ffn/ and norm/ subpackages hold tagged variants that register themselves
with the layer registry on import. The remaining modules (patch embedding,
rotary encoding, layer scale) have a single implementation each.
"""
