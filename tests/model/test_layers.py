# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the layer registry and the individual layers.
"""

import pytest
import torch
import torch.nn as nn
import torch.nn.functional as F

from dinofeat.model.layers.ffn import MLP, SwiGLUFFN
from dinofeat.model.layers.layer_scale import LayerScale
from dinofeat.model.layers.norm import LayerNorm, RMSNorm
from dinofeat.model.layers.patch_embed import PatchEmbed
from dinofeat.model.registry import (
    get_ffn,
    get_norm,
    list_ffn_types,
    list_norm_types,
    register_ffn,
    register_norm,
)


class TestRegistry:
    """Tests for the FFN and norm registries."""

    def test_builtins_registered(self) -> None:
        """Built-in layers register on import."""
        assert list_ffn_types() == ["mlp", "swiglu"]
        assert list_norm_types() == ["layernorm", "rmsnorm"]

    def test_lookup(self) -> None:
        assert get_ffn("mlp") is MLP
        assert get_ffn("swiglu") is SwiGLUFFN
        assert get_norm("layernorm") is LayerNorm
        assert get_norm("rmsnorm") is RMSNorm

    def test_unknown_type(self) -> None:
        """Unknown names must raise KeyError."""
        with pytest.raises(KeyError, match="Unknown FFN type"):
            get_ffn("moe")
        with pytest.raises(KeyError, match="Unknown Norm type"):
            get_norm("batchnorm")

    def test_duplicate_registration(self) -> None:
        """A name cannot be registered twice."""
        with pytest.raises(ValueError, match="already registered"):
            register_ffn("mlp", nn.Identity)
        with pytest.raises(ValueError, match="already registered"):
            register_norm("rmsnorm", nn.Identity)


class TestFeedForward:
    """Tests for the FFN variants."""

    def test_mlp_matches_gelu_composition(self) -> None:
        """MLP must be down(gelu(up(x)))."""
        mlp = MLP(dim=8, hidden_dim=16)
        x = torch.randn(2, 3, 8)
        expected = mlp.down_proj(F.gelu(mlp.up_proj(x)))
        assert torch.allclose(mlp(x), expected)
        assert mlp.up_proj.out_features == 16

    def test_swiglu_matches_gated_composition(self) -> None:
        """SwiGLU must be down(silu(gate(x)) * up(x))."""
        ffn = SwiGLUFFN(dim=8, hidden_dim=16)
        x = torch.randn(2, 3, 8)
        expected = ffn.down_proj(F.silu(ffn.gate_proj(x)) * ffn.up_proj(x))
        assert torch.allclose(ffn(x), expected)

    def test_hidden_dim_defaults_to_dim(self) -> None:
        assert MLP(dim=8).up_proj.out_features == 8


class TestNorms:
    """Tests for the normalization layers."""

    def test_rmsnorm_unit_rms(self) -> None:
        """With unit weight the output has RMS 1."""
        norm = RMSNorm(dim=16, eps=0.0)
        x = torch.randn(4, 16) * 5.0
        rms = norm(x).pow(2).mean(dim=-1).sqrt()
        assert torch.allclose(rms, torch.ones(4), atol=1e-5)

    def test_layernorm_is_affine(self) -> None:
        norm = LayerNorm(dim=16, eps=1e-6)
        assert norm.weight.shape == (16,)
        assert norm.bias.shape == (16,)
        assert norm.eps == 1e-6


class TestLayerScale:
    """Tests for per-channel residual scaling."""

    def test_scales_channels(self) -> None:
        """Output is the input times lambda1."""
        scale = LayerScale(4, init_values=0.5)
        x = torch.ones(2, 4)
        assert torch.equal(scale(x), torch.full((2, 4), 0.5))
        assert scale.init_values == 0.5


class TestPatchEmbed:
    """Tests for the channels-last patch embedding."""

    def test_matches_channels_first_convolution(self) -> None:
        """Must equal a stride-p conv over the NCHW permutation."""
        embed = PatchEmbed(img_size=32, patch_size=8, in_channels=3, embed_dim=16)
        nn.init.normal_(embed.weight)
        nn.init.normal_(embed.bias)
        x = torch.randn(2, 32, 24, 3)
        expected = F.conv2d(x.permute(0, 3, 1, 2), embed.weight, embed.bias, stride=8)
        expected = expected.flatten(2).transpose(1, 2)
        assert torch.allclose(embed(x), expected, atol=1e-5)

    def test_row_major_patch_order(self) -> None:
        """Only the patch at grid (1, 2) differs, so only flat index 1 * 3 + 2 changes."""
        embed = PatchEmbed(img_size=32, patch_size=8, embed_dim=4)
        nn.init.normal_(embed.weight)
        x = torch.zeros(1, 16, 24, 3)
        base = embed(x)
        x[0, 8:16, 16:24] = 1.0
        changed = (embed(x) - base).abs().sum(dim=-1)[0]
        assert torch.nonzero(changed).flatten().tolist() == [5]

    def test_unflattened_output(self) -> None:
        """Without flattening the output keeps the (H, W) grid."""
        embed = PatchEmbed(img_size=32, patch_size=8, embed_dim=16, flatten_embedding=False)
        nn.init.normal_(embed.weight)
        assert embed(torch.randn(1, 16, 32, 3)).shape == (1, 2, 4, 16)

    def test_num_patches(self) -> None:
        assert PatchEmbed(img_size=224, patch_size=16).num_patches == 196

    def test_rejects_indivisible_size(self) -> None:
        """Sizes not divisible by the patch must raise ValueError."""
        embed = PatchEmbed(img_size=32, patch_size=8)
        with pytest.raises(ValueError, match="not divisible"):
            embed(torch.randn(1, 31, 32, 3))

    def test_rejects_wrong_rank(self) -> None:
        """Unbatched input must raise ValueError."""
        embed = PatchEmbed(img_size=32, patch_size=8)
        with pytest.raises(ValueError, match="Expected"):
            embed(torch.randn(32, 32, 3))
