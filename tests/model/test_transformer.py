# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the full DINOv3 vision transformer.

Validates output shapes at the reference resolution, determinism, token
layout, the tied/untied final norms, intermediate layer collection, patch
masking and input validation.
"""

import pytest
import torch

from dinofeat.model.config import VisionTransformerConfig
from dinofeat.model.transformer import DinoOutput, DinoVisionTransformer


def _reference_config() -> VisionTransformerConfig:
    return VisionTransformerConfig(
        img_size=224,
        patch_size=16,
        embed_dim=384,
        depth=12,
        num_heads=6,
        num_register_tokens=4,
        layerscale_init=1e-5,
        untie_cls_and_patch_norms=True,
    )


class TestReferenceShapes:
    """Tests at the released ViT-S/16 size."""

    def test_small_model_at_224(self) -> None:
        """A 224x224 input yields 1 + 4 + 196 = 201 tokens."""
        model = DinoVisionTransformer(_reference_config()).eval()
        pixels = torch.randn(1, 224, 224, 3)
        with torch.no_grad():
            output = model(pixels, output_attentions=True)

        assert isinstance(output, DinoOutput)
        assert output.pooler_output.shape == (1, 384)
        assert output.last_hidden_state.shape == (1, 201, 384)
        assert output.hidden_states is None
        assert len(output.attentions) == 12
        assert output.attentions[0].shape == (1, 6, 201, 201)


class TestForward:
    """Tests for the top-level forward pass."""

    def test_output_shapes(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """Output covers class, register and patch tokens."""
        with torch.no_grad():
            output = tiny_model(pixel_values)
        # 1 cls + 2 registers + 16 patches
        assert output.last_hidden_state.shape == (1, 19, 32)
        assert output.pooler_output.shape == (1, 32)
        assert output.attentions is None

    def test_pooler_is_first_token(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """pooler_output must be the normalized class token."""
        with torch.no_grad():
            output = tiny_model(pixel_values)
        assert torch.equal(output.pooler_output, output.last_hidden_state[:, 0])

    def test_deterministic(self, tiny_config, pixel_values) -> None:
        """Two models built from the same config produce identical outputs."""
        a = DinoVisionTransformer(tiny_config).eval()
        b = DinoVisionTransformer(tiny_config).eval()
        with torch.no_grad():
            out_a = a(pixel_values)
            out_b = b(pixel_values)
        assert torch.equal(out_a.last_hidden_state, out_b.last_hidden_state)

    def test_repeated_calls_are_bit_identical(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """Repeated calls on one model are bit-identical, even after an attention-weights pass."""
        with torch.no_grad():
            first = tiny_model(pixel_values)
            with_weights = tiny_model(pixel_values, output_attentions=True)
            second = tiny_model(pixel_values)
        assert torch.equal(first.last_hidden_state, second.last_hidden_state)
        assert torch.equal(first.pooler_output, second.pooler_output)
        assert with_weights.attentions is not None
        assert torch.allclose(with_weights.last_hidden_state, first.last_hidden_state, atol=1e-5)

    def test_batch_elements_are_independent(self, tiny_model: DinoVisionTransformer) -> None:
        """Batching must not mix images."""
        pixels = torch.randn(3, 32, 32, 3)
        with torch.no_grad():
            batched = tiny_model(pixels).pooler_output
            single = tiny_model(pixels[1:2]).pooler_output
        assert torch.allclose(batched[1:2], single, atol=1e-5)

    def test_hidden_states(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """One hidden state per block plus the embedding output."""
        with torch.no_grad():
            output = tiny_model(pixel_values, output_hidden_states=True)
        features = output.hidden_states
        assert features is not None
        # embedding output plus one entry per block
        for i in range(3):
            assert features[f"hidden_state_{i}"].shape == (1, 19, 32)
        assert "hidden_state_3" not in features
        assert torch.equal(features["hidden_state_2"], features["x_prenorm"])

    def test_non_square_input(self, tiny_model: DinoVisionTransformer) -> None:
        """Rectangular inputs give H/p * W/p patch tokens."""
        pixels = torch.randn(1, 16, 48, 3)
        with torch.no_grad():
            output = tiny_model(pixels)
        assert output.last_hidden_state.shape == (1, 3 + 2 * 6, 32)

    def test_size_not_divisible_by_patch_is_rejected(self, tiny_model: DinoVisionTransformer) -> None:
        """Sizes not divisible by the patch must raise ValueError."""
        with pytest.raises(ValueError, match="not divisible"):
            tiny_model(torch.randn(1, 30, 32, 3))

    def test_channels_first_input_is_rejected(self, tiny_model: DinoVisionTransformer) -> None:
        """NCHW input must raise ValueError."""
        with pytest.raises(ValueError, match="channels"):
            tiny_model(torch.randn(1, 3, 32, 32))


class TestTokenLayout:
    """Tests for the order of tokens in the sequence."""

    @pytest.mark.parametrize("num_registers", [0, 1, 4])
    def test_cls_registers_then_patches(self, config_factory, num_registers: int) -> None:
        """Tokens are [cls, registers, patches] for any register count."""
        model = DinoVisionTransformer(config_factory(num_register_tokens=num_registers)).eval()
        pixels = torch.randn(2, 32, 32, 3)
        with torch.no_grad():
            features, _ = model.forward_features(pixels, output_hidden_states=True)
            patches = model.embeddings.patch_embeddings(pixels)
        tokens = features["hidden_state_0"]

        assert tokens.shape == (2, 1 + num_registers + 16, 32)
        assert torch.equal(tokens[:, 0], model.embeddings.cls_token[0, 0].expand(2, -1))
        if num_registers:
            registers = model.embeddings.register_tokens.expand(2, -1, -1)
            assert torch.equal(tokens[:, 1 : 1 + num_registers], registers)
        else:
            assert model.embeddings.register_tokens is None
        assert torch.equal(tokens[:, 1 + num_registers :], patches)

    @pytest.mark.parametrize("num_registers", [0, 4])
    def test_feature_split(self, config_factory, num_registers: int) -> None:
        """forward_features splits the sequence into its parts."""
        model = DinoVisionTransformer(config_factory(num_register_tokens=num_registers)).eval()
        with torch.no_grad():
            features, _ = model.forward_features(torch.randn(1, 32, 32, 3))
        assert features["x_norm_clstoken"].shape == (1, 32)
        assert features["x_register_tokens"].shape == (1, num_registers, 32)
        assert features["x_norm_patchtokens"].shape == (1, 16, 32)
        assert features["x_prenorm"].shape == (1, 1 + num_registers + 16, 32)


class TestFinalNorm:
    """Tests for the tied and untied final norms."""

    def test_tied_has_no_cls_norm(self, tiny_model: DinoVisionTransformer) -> None:
        """A tied model has no cls_norm parameters."""
        assert tiny_model.cls_norm is None
        assert "cls_norm.weight" not in tiny_model.state_dict()

    def test_untied_has_cls_norm(self, config_factory) -> None:
        """An untied model adds cls_norm to the state dict."""
        model = DinoVisionTransformer(config_factory(untie_cls_and_patch_norms=True))
        assert model.cls_norm is not None
        assert "cls_norm.weight" in model.state_dict()

    def test_untied_norm_only_touches_prefix(self, config_factory, pixel_values) -> None:
        """Changing cls_norm moves the class and register tokens but not the patches."""
        model = DinoVisionTransformer(config_factory(untie_cls_and_patch_norms=True)).eval()
        with torch.no_grad():
            before, _ = model.forward_features(pixel_values)
            model.cls_norm.weight.fill_(2.0)
            after, _ = model.forward_features(pixel_values)
        assert torch.allclose(after["x_norm_clstoken"], 2.0 * before["x_norm_clstoken"], atol=1e-6)
        assert torch.equal(after["x_norm_patchtokens"], before["x_norm_patchtokens"])

    def test_tied_norm_covers_whole_sequence(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """With tied norms one LayerNorm covers every token."""
        with torch.no_grad():
            features, _ = tiny_model.forward_features(pixel_values)
            expected = tiny_model.norm(features["x_prenorm"])
        assert torch.allclose(features["x_norm_clstoken"], expected[:, 0])
        assert torch.allclose(features["x_norm_patchtokens"], expected[:, 3:])


class TestIntermediateLayers:
    """Tests for collecting outputs of intermediate blocks."""

    def test_last_n(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """n selects the last n blocks, patches only by default."""
        with torch.no_grad():
            outputs = tiny_model.get_intermediate_layers(pixel_values, n=2)
        assert len(outputs) == 2
        assert outputs[0].patches.shape == (1, 16, 32)
        assert outputs[0].cls is None
        assert outputs[0].registers is None

    def test_last_layer_matches_features(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """The last block's normalized output equals forward_features."""
        with torch.no_grad():
            (last,) = tiny_model.get_intermediate_layers(
                pixel_values, n=1, return_class_token=True, return_register_tokens=True
            )
            features, _ = tiny_model.forward_features(pixel_values)
        assert torch.allclose(last.patches, features["x_norm_patchtokens"], atol=1e-6)
        assert torch.allclose(last.cls, features["x_norm_clstoken"], atol=1e-6)
        assert torch.allclose(last.registers, features["x_register_tokens"], atol=1e-6)

    def test_unnormalized_matches_prenorm(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """norm=False returns raw block output."""
        with torch.no_grad():
            (last,) = tiny_model.get_intermediate_layers(pixel_values, norm=False)
            features, _ = tiny_model.forward_features(pixel_values)
        assert torch.allclose(last.patches, features["x_prenorm"][:, 3:], atol=1e-6)

    def test_explicit_indices(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """Explicit indices pick specific blocks."""
        with torch.no_grad():
            first = tiny_model.get_intermediate_layers(pixel_values, indices=[0], norm=False)
            features, _ = tiny_model.forward_features(pixel_values, output_hidden_states=True)
        assert torch.allclose(first[0].patches, features["hidden_state_1"][:, 3:], atol=1e-6)

    def test_reshape_to_grid(self, tiny_model: DinoVisionTransformer) -> None:
        """reshape=True lays patches out as (B, D, H, W) row-major."""
        pixels = torch.randn(2, 16, 32, 3)
        with torch.no_grad():
            (flat,) = tiny_model.get_intermediate_layers(pixels)
            (grid,) = tiny_model.get_intermediate_layers(pixels, reshape=True)
        assert grid.patches.shape == (2, 32, 2, 4)
        # patch (row 1, col 2) is flat index 1 * 4 + 2
        assert torch.allclose(grid.patches[:, :, 1, 2], flat.patches[:, 6])

    @pytest.mark.parametrize("n", [0, 3])
    def test_n_out_of_range(self, tiny_model: DinoVisionTransformer, pixel_values, n: int) -> None:
        """n must be between 1 and depth."""
        with pytest.raises(ValueError, match="n must be"):
            tiny_model.get_intermediate_layers(pixel_values, n=n)

    def test_index_out_of_range(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """Indices past the last block must raise ValueError."""
        with pytest.raises(ValueError, match="out of range"):
            tiny_model.get_intermediate_layers(pixel_values, indices=[0, 2])


class TestMasking:
    """Tests for replacing patch tokens with the mask token."""

    def test_masked_patches_use_mask_token(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """Masked positions hold the mask token, others the patch embedding."""
        masks = torch.zeros(1, 16, dtype=torch.bool)
        masks[0, 5] = True
        with torch.no_grad():
            features, _ = tiny_model.forward_features(
                pixel_values, masks=masks, output_hidden_states=True
            )
            patches = tiny_model.embeddings.patch_embeddings(pixel_values)
        tokens = features["hidden_state_0"][:, 3:]
        assert torch.equal(tokens[0, 5], tiny_model.embeddings.mask_token[0, 0])
        assert torch.equal(tokens[0, 4], patches[0, 4])
        assert torch.equal(features["masks"], masks)

    def test_mask_shape_mismatch(self, tiny_model: DinoVisionTransformer, pixel_values) -> None:
        """The mask must cover exactly the patch grid."""
        with pytest.raises(ValueError, match="Mask shape"):
            tiny_model.forward_features(pixel_values, masks=torch.zeros(1, 15, dtype=torch.bool))


class TestParameters:
    """Tests for parameter naming and counting."""

    def test_count_parameters(self, tiny_model: DinoVisionTransformer) -> None:
        expected = sum(p.numel() for p in tiny_model.parameters())
        assert tiny_model.count_parameters() == expected

    def test_state_dict_keys(self, tiny_model: DinoVisionTransformer) -> None:
        """Parameter names must match published checkpoints."""
        keys = set(tiny_model.state_dict())
        assert "embeddings.cls_token" in keys
        assert "embeddings.register_tokens" in keys
        assert "embeddings.patch_embeddings.weight" in keys
        assert "layer.0.attention.q_proj.weight" in keys
        assert "layer.1.layer_scale2.lambda1" in keys
        assert "layer.1.mlp.down_proj.bias" in keys
        assert "norm.weight" in keys
        assert not any(key.startswith("rope_embed") for key in keys)
