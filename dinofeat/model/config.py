# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Model configuration for dinofeat.

All architecture sizes and toggles live on one immutable object. The same
class describes ViT-S/16 through ViT-H+/16 by changing values only; nothing
in the model code hardcodes a dimension.

This is a frozen dataclass rather than a pydantic model because it is held
by torch modules. File-level validation of pretrained ``config.json`` files
happens in config/schema.py, which bridges into this object.
"""

from dataclasses import dataclass
from typing import Optional

import torch

NORMALIZE_COORDS_MODES = ("separate", "max", "min")
FFN_TYPES = ("mlp", "swiglu")
NORM_TYPES = ("layernorm", "rmsnorm")

_ROPE_DTYPES: dict[str, torch.dtype] = {
    "fp32": torch.float32,
    "fp16": torch.float16,
    "bf16": torch.bfloat16,
}


def resolve_rope_dtype(name: str) -> torch.dtype:
    """Map a precision string to a torch dtype, defaulting to float32."""
    return _ROPE_DTYPES.get(name.lower(), torch.float32)


def compute_mlp_hidden_dim(
    embed_dim: int,
    ffn_ratio: float = 4.0,
    intermediate_size: Optional[int] = None,
) -> int:
    """
    Width of the feed-forward hidden layer.

    Pretrained configs either spell the width out (``intermediate_size``) or
    give an expansion ratio. The explicit width wins when both are present.
    """
    if intermediate_size is not None:
        return intermediate_size
    return int(embed_dim * ffn_ratio)


@dataclass(frozen=True)
class VisionTransformerConfig:
    """
    Configuration for the DINOv3 vision transformer.

    Args:
        img_size: Nominal square input size in pixels.
        patch_size: Edge of the square patches.
        in_channels: Number of input channels.
        embed_dim: Hidden dimension D.
        depth: Number of transformer blocks.
        num_heads: Number of attention heads.
        ffn_ratio: Feed-forward expansion ratio.
        intermediate_size: Explicit feed-forward width; overrides ffn_ratio.
        query_bias: Bias on the query projection.
        key_bias: Bias on the key projection.
        value_bias: Bias on the value projection.
        proj_bias: Bias on the attention output projection.
        ffn_bias: Bias on the feed-forward projections.
        layerscale_init: Initial layer-scale value. None means 1.0.
        norm_eps: Epsilon for every normalization layer.
        norm_type: "layernorm" or "rmsnorm".
        ffn_type: "mlp" (GELU) or "swiglu" (SiLU-gated).
        num_register_tokens: Number of register tokens R.
        rope_base: Rotary base. Mutually exclusive with the period pair.
        rope_min_period: Smallest rotary period.
        rope_max_period: Largest rotary period.
        rope_normalize_coords: "separate", "max" or "min".
        rope_rescale_coords: Optional multiplier applied to the [-1, 1] coords.
        rope_dtype: "fp32", "fp16" or "bf16" for the rotary tables.
        untie_cls_and_patch_norms: Separate final norm for cls + registers.
        seed: Seed for deterministic initialization.
    """

    img_size: int = 224
    patch_size: int = 16
    in_channels: int = 3
    embed_dim: int = 384
    depth: int = 12
    num_heads: int = 6
    ffn_ratio: float = 4.0
    intermediate_size: Optional[int] = None
    query_bias: bool = True
    key_bias: bool = False
    value_bias: bool = True
    proj_bias: bool = True
    ffn_bias: bool = True
    layerscale_init: Optional[float] = None
    norm_eps: float = 1e-5
    norm_type: str = "layernorm"
    ffn_type: str = "mlp"
    num_register_tokens: int = 0
    rope_base: Optional[float] = 100.0
    rope_min_period: Optional[float] = None
    rope_max_period: Optional[float] = None
    rope_normalize_coords: str = "separate"
    rope_rescale_coords: Optional[float] = None
    rope_dtype: str = "fp32"
    untie_cls_and_patch_norms: bool = False
    seed: int = 42

    def __post_init__(self) -> None:
        for name in ("img_size", "patch_size", "in_channels", "embed_dim", "depth", "num_heads"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.num_register_tokens < 0:
            raise ValueError(
                f"num_register_tokens must be >= 0, got {self.num_register_tokens}"
            )
        if self.embed_dim % (4 * self.num_heads) != 0:
            raise ValueError(
                f"embed_dim ({self.embed_dim}) must be divisible by 4 * num_heads "
                f"({4 * self.num_heads}) for 2D rotary encoding"
            )
        if self.ffn_type not in FFN_TYPES:
            raise ValueError(f"Unknown ffn_type '{self.ffn_type}'. Available: {list(FFN_TYPES)}")
        if self.norm_type not in NORM_TYPES:
            raise ValueError(
                f"Unknown norm_type '{self.norm_type}'. Available: {list(NORM_TYPES)}"
            )
        if self.rope_normalize_coords not in NORMALIZE_COORDS_MODES:
            raise ValueError(
                f"Unknown rope_normalize_coords '{self.rope_normalize_coords}'. "
                f"Available: {list(NORMALIZE_COORDS_MODES)}"
            )
        both_periods = self.rope_min_period is not None and self.rope_max_period is not None
        if (self.rope_base is None) == (not both_periods):
            raise ValueError("Either rope_base or rope_min_period + rope_max_period must be set")

    @property
    def head_dim(self) -> int:
        """Dimension per attention head."""
        return self.embed_dim // self.num_heads

    @property
    def mlp_hidden_dim(self) -> int:
        """Computed feed-forward hidden dimension."""
        return compute_mlp_hidden_dim(self.embed_dim, self.ffn_ratio, self.intermediate_size)

    @property
    def num_prefix_tokens(self) -> int:
        """Class token plus register tokens."""
        return 1 + self.num_register_tokens

    @property
    def layerscale_value(self) -> float:
        return 1.0 if self.layerscale_init is None else self.layerscale_init

    @property
    def rope_torch_dtype(self) -> torch.dtype:
        return resolve_rope_dtype(self.rope_dtype)

    def num_patches(self, height: int, width: int) -> int:
        """Patch count for an input of the given pixel size."""
        return (height // self.patch_size) * (width // self.patch_size)
