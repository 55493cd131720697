# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Model factory for dinofeat.

Provides layer builder functions, preset configurations for the released
DINOv3 ViT checkpoints, and the build functions. All sizes share the same
code; only config values change.

Layer builder functions use the registry to resolve layer types from config
strings. No if/else chains, the registry handles dispatch.
"""

import dataclasses
import logging
from typing import Any, Callable

import torch.nn as nn

from dinofeat.model.config import VisionTransformerConfig
from dinofeat.model.registry import get_ffn, get_norm

logger = logging.getLogger(__name__)


# ── Layer Builder Functions ─────────────────────────────────────────────────


def build_ffn(config: VisionTransformerConfig) -> nn.Module:
    """
    Build a feed-forward layer from config.

    Looks up config.ffn_type in the registry and constructs the layer with
    the config's width, hidden width and bias toggle.

    Args:
        config: Model config with ffn_type, embed_dim, mlp_hidden_dim, ffn_bias.

    Returns:
        An initialized nn.Module mapping (..., dim) to (..., dim).
    """
    ffn_cls = get_ffn(config.ffn_type)
    return ffn_cls(
        dim=config.embed_dim,
        hidden_dim=config.mlp_hidden_dim,
        bias=config.ffn_bias,
    )


def build_norm(config: VisionTransformerConfig, dim: int) -> nn.Module:
    """
    Build a normalization layer from config.

    Args:
        config: Model config with norm_type and norm_eps.
        dim: Feature dimension to normalize over.

    Returns:
        An initialized nn.Module implementing the Norm contract.
    """
    norm_cls = get_norm(config.norm_type)
    return norm_cls(dim=dim, eps=config.norm_eps)


# ── Preset Configurations ──────────────────────────────────────────────────
#
# The LVD-1689M checkpoints. All use 4 register tokens, RoPE base 100 with
# separate coordinate normalization, and untied cls/patch norms.


def _dinov3_config(**kwargs: Any) -> VisionTransformerConfig:
    defaults: dict[str, Any] = dict(
        img_size=224,
        patch_size=16,
        in_channels=3,
        layerscale_init=1e-5,
        num_register_tokens=4,
        rope_base=100.0,
        rope_normalize_coords="separate",
        untie_cls_and_patch_norms=True,
    )
    defaults.update(kwargs)
    return VisionTransformerConfig(**defaults)


def vits16_config(seed: int = 42) -> VisionTransformerConfig:
    """ViT-S/16 (21M parameters)."""
    return _dinov3_config(embed_dim=384, depth=12, num_heads=6, ffn_ratio=4.0, seed=seed)


def vits16plus_config(seed: int = 42) -> VisionTransformerConfig:
    """ViT-S+/16 (29M parameters), SwiGLU feed-forward."""
    return _dinov3_config(
        embed_dim=384,
        depth=12,
        num_heads=6,
        ffn_ratio=6.0,
        intermediate_size=1536,
        ffn_type="swiglu",
        seed=seed,
    )


def vitb16_config(seed: int = 42) -> VisionTransformerConfig:
    """ViT-B/16 (86M parameters)."""
    return _dinov3_config(embed_dim=768, depth=12, num_heads=12, ffn_ratio=4.0, seed=seed)


def vitl16_config(seed: int = 42) -> VisionTransformerConfig:
    """ViT-L/16 (300M parameters)."""
    return _dinov3_config(embed_dim=1024, depth=24, num_heads=16, ffn_ratio=4.0, seed=seed)


def vith16plus_config(seed: int = 42) -> VisionTransformerConfig:
    """ViT-H+/16 (840M parameters), SwiGLU feed-forward."""
    return _dinov3_config(
        embed_dim=1280,
        depth=32,
        num_heads=20,
        ffn_ratio=6.0,
        intermediate_size=5120,
        ffn_type="swiglu",
        seed=seed,
    )


PRESETS: dict[str, Callable[..., VisionTransformerConfig]] = {
    "vits16": vits16_config,
    "vits16plus": vits16plus_config,
    "vitb16": vitb16_config,
    "vitl16": vitl16_config,
    "vith16plus": vith16plus_config,
}


def build_model(config: VisionTransformerConfig) -> "DinoVisionTransformer":
    """
    Build a DinoVisionTransformer from a config object.

    This is the canonical entry point for model construction. Parameters are
    deterministically initialized from ``config.seed``; pretrained weights
    are loaded on top by the inference loader.

    Args:
        config: Fully populated VisionTransformerConfig.

    Returns:
        Initialized DinoVisionTransformer.
    """
    # Deferred import to avoid circular dependency (transformer → block → factory)
    from dinofeat.model.transformer import DinoVisionTransformer

    logger.info(
        "building_model",
        extra={
            "embed_dim": config.embed_dim,
            "depth": config.depth,
            "num_heads": config.num_heads,
            "head_dim": config.head_dim,
            "mlp_hidden_dim": config.mlp_hidden_dim,
            "patch_size": config.patch_size,
            "num_register_tokens": config.num_register_tokens,
            "ffn_type": config.ffn_type,
            "norm_type": config.norm_type,
            "untie_cls_and_patch_norms": config.untie_cls_and_patch_norms,
        },
    )
    model = DinoVisionTransformer(config)
    logger.info("model_built", extra={"total_parameters": model.count_parameters()})
    return model


def build_model_from_preset(preset: str, **overrides: Any) -> "DinoVisionTransformer":
    """
    Build a DinoVisionTransformer from a named preset.

    Args:
        preset: One of the keys of ``PRESETS``.
        **overrides: Config fields replacing the preset's values.

    Returns:
        Initialized DinoVisionTransformer.

    Raises:
        ValueError: If the preset name is not recognized.
    """
    config_fn = PRESETS.get(preset)
    if config_fn is None:
        raise ValueError(f"Unknown preset '{preset}'. Available: {list(PRESETS.keys())}")
    config = config_fn()
    if overrides:
        config = dataclasses.replace(config, **overrides)
    return build_model(config)
