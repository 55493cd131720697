# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe schema for pretrained model ``config.json`` files.

The file format is the one published alongside DINOv3 checkpoints. Those
files carry many keys that only matter for training (dropout, drop path,
coordinate jitter), so unknown keys are ignored rather than rejected.

The model uses pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="ignore": unrelated keys in published configs are dropped
  - validate_default=True: even defaults get type-checked
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PretrainedConfig(BaseModel):
    """
    Architecture section of a pretrained checkpoint's config file.

    Field names follow the published files; ``config.loader.to_model_config``
    translates them to ``VisionTransformerConfig``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", validate_default=True)

    image_size: int = Field(default=224, gt=0, description="Nominal square input size")
    patch_size: int = Field(default=16, gt=0, description="Patch edge in pixels")
    num_channels: int = Field(default=3, gt=0, description="Input channel count")
    hidden_size: int = Field(default=768, gt=0, description="Embedding dimension")
    num_hidden_layers: int = Field(default=12, gt=0, description="Number of blocks")
    num_attention_heads: int = Field(default=12, gt=0, description="Attention heads")
    mlp_ratio: float = Field(default=4.0, gt=0, description="Feed-forward expansion ratio")
    intermediate_size: Optional[int] = Field(
        default=None, gt=0, description="Explicit feed-forward width, overrides mlp_ratio"
    )
    query_bias: bool = True
    key_bias: bool = False
    value_bias: bool = True
    proj_bias: bool = True
    mlp_bias: bool = True
    layerscale_value: Optional[float] = Field(
        default=None, description="Initial layer-scale value; unset means 1.0"
    )
    layer_norm_eps: float = Field(default=1e-5, gt=0)
    use_gated_mlp: bool = Field(default=False, description="SwiGLU instead of GELU MLP")
    num_register_tokens: int = Field(default=0, ge=0)
    rope_theta: float = Field(default=100.0, gt=0, description="Rotary base")
    rope_normalize_coords: str = Field(
        default="separate", pattern="^(separate|max|min)$"
    )
    rope_rescale_coords: Optional[float] = Field(default=None, gt=0)
    rope_dtype: str = Field(default="fp32", description="fp32, fp16 or bf16")
    use_separate_norms_for_cls_and_patches: bool = False

    @model_validator(mode="after")
    def _check_head_layout(self) -> "PretrainedConfig":
        if self.hidden_size % (4 * self.num_attention_heads) != 0:
            raise ValueError(
                f"hidden_size ({self.hidden_size}) must be divisible by "
                f"4 * num_attention_heads ({4 * self.num_attention_heads})"
            )
        return self
