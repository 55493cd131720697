# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Deterministic weight initialization for dinofeat.

A freshly built model is fully defined by its config: every call to
init_weights produces identical parameter values given the same seed and
model config. Pretrained checkpoints overwrite all of these values when
loaded, so the distributions only matter for tests and smoke runs.

All initialization uses a single torch.Generator seeded from the config.
"""

import torch
import torch.nn as nn

from dinofeat.model.layers.layer_scale import LayerScale


def init_weights(module: nn.Module, seed: int, init_std: float = 0.02) -> None:
    """
    Initialize all parameters in a module deterministically.

    Matrices, conv kernels and token tables get normal(0, init_std), norm
    weights 1.0 and biases 0.0. Layer-scale vectors are reset to their
    configured init value.

    Args:
        module: The nn.Module to initialize.
        seed: Random seed for the Generator.
        init_std: Standard deviation for normal initialization.

    Side effects:
        Modifies all parameter tensors in the module in-place.
    """
    generator = torch.Generator()
    generator.manual_seed(seed)

    with torch.no_grad():
        for name, param in module.named_parameters():
            if name.endswith("lambda1"):
                continue
            if param.dim() >= 2:
                # Linear weights, conv kernels, cls/register/mask tokens
                param.normal_(0.0, init_std, generator=generator)
            elif name.endswith("weight"):
                param.fill_(1.0)
            else:
                param.zero_()

        for submodule in module.modules():
            if isinstance(submodule, LayerScale):
                submodule.lambda1.fill_(submodule.init_values)
