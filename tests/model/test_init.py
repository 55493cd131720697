# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for deterministic weight initialization.
"""

import torch

from dinofeat.model.init.weights import init_weights
from dinofeat.model.transformer import DinoVisionTransformer


class TestInitWeights:
    """Tests for seeded weight initialization."""

    def test_same_seed_same_weights(self, tiny_config) -> None:
        """Same seed must produce identical state dicts."""
        a = DinoVisionTransformer(tiny_config).state_dict()
        b = DinoVisionTransformer(tiny_config).state_dict()
        for key in a:
            assert torch.equal(a[key], b[key]), key

    def test_different_seed_different_weights(self, config_factory) -> None:
        """Different seeds must produce different weights."""
        a = DinoVisionTransformer(config_factory(seed=1))
        b = DinoVisionTransformer(config_factory(seed=2))
        assert not torch.equal(a.embeddings.cls_token, b.embeddings.cls_token)

    def test_reinit_is_reproducible(self, tiny_model: DinoVisionTransformer) -> None:
        """Re-running init restores the original weights."""
        before = {k: v.clone() for k, v in tiny_model.state_dict().items()}
        with torch.no_grad():
            tiny_model.layer[0].attention.q_proj.weight.add_(1.0)
        init_weights(tiny_model, seed=tiny_model.config.seed)
        for key, value in tiny_model.state_dict().items():
            assert torch.equal(value, before[key]), key

    def test_norms_and_biases(self, tiny_model: DinoVisionTransformer) -> None:
        """Norm scales start at one, biases at zero."""
        block = tiny_model.layer[0]
        assert torch.all(block.norm1.weight == 1.0)
        assert torch.all(block.norm1.bias == 0.0)
        assert torch.all(block.attention.q_proj.bias == 0.0)
        assert torch.all(tiny_model.norm.weight == 1.0)

    def test_layer_scale_keeps_configured_value(self, config_factory) -> None:
        """Init must not overwrite the configured layer scale."""
        model = DinoVisionTransformer(config_factory(layerscale_init=1e-5))
        for block in model.layer:
            assert torch.allclose(block.layer_scale1.lambda1, torch.full((32,), 1e-5))
            assert torch.allclose(block.layer_scale2.lambda1, torch.full((32,), 1e-5))

    def test_matrices_are_small_normal(self, config_factory) -> None:
        """Linear weights are drawn from N(0, 0.02)."""
        model = DinoVisionTransformer(config_factory(embed_dim=64, num_heads=2))
        weight = model.layer[0].mlp.up_proj.weight
        assert abs(weight.mean().item()) < 0.005
        assert 0.015 < weight.std().item() < 0.025
