# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Full DINOv3 vision transformer for dinofeat.

Topology:
  Image (B, H, W, C) → Embeddings → N × SelfAttentionBlock → Final Norm → Features

Rotary tables are computed once per forward call from the patch grid and
shared by every block. The final normalization is either tied (one norm over
the whole sequence) or untied (``cls_norm`` for cls + registers, ``norm`` for
patches). Which one is used is fixed at construction.

The module holds no per-call state, so a loaded model in eval mode can be
called from several threads under ``torch.inference_mode()``.
"""

from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence

import torch
import torch.nn as nn

from dinofeat.logging.logger import get_logger
from dinofeat.model.block import SelfAttentionBlock
from dinofeat.model.config import VisionTransformerConfig
from dinofeat.model.embeddings import Embeddings
from dinofeat.model.factory import build_norm
from dinofeat.model.init.weights import init_weights
from dinofeat.model.layers.rotary import RopePositionEmbedding

logger = get_logger(__name__)


@dataclass(frozen=True)
class DinoOutput:
    """
    Result of a full forward pass.

    Attributes:
        last_hidden_state: Normalized sequence [cls, registers, patches],
            shape (batch, 1 + R + P, embed_dim).
        pooler_output: Normalized class token, shape (batch, embed_dim).
        hidden_states: The full feature mapping when hidden states were
            requested, else None.
        attentions: Per-block attention probabilities when requested.
    """

    last_hidden_state: torch.Tensor
    pooler_output: torch.Tensor
    hidden_states: Optional[dict[str, torch.Tensor]] = None
    attentions: Optional[list[torch.Tensor]] = None


class IntermediateLayerOutput(NamedTuple):
    """Tokens collected from one block by ``get_intermediate_layers``."""

    patches: torch.Tensor
    cls: Optional[torch.Tensor] = None
    registers: Optional[torch.Tensor] = None


class DinoVisionTransformer(nn.Module):
    """
    Self-supervised ViT backbone producing dense patch features.

    Submodule names match the pretrained checkpoint keys: ``embeddings``,
    ``layer.{i}``, ``norm`` and, when untied, ``cls_norm``.

    Args:
        config: VisionTransformerConfig with all architecture parameters.
    """

    def __init__(self, config: VisionTransformerConfig) -> None:
        super().__init__()
        self.config = config
        self.num_register_tokens = config.num_register_tokens
        self.num_prefix_tokens = config.num_prefix_tokens
        self.untie_cls_and_patch_norms = config.untie_cls_and_patch_norms

        self.embeddings = Embeddings(config)

        self.rope_embed = RopePositionEmbedding(
            embed_dim=config.embed_dim,
            num_heads=config.num_heads,
            base=config.rope_base,
            min_period=config.rope_min_period,
            max_period=config.rope_max_period,
            normalize_coords=config.rope_normalize_coords,
            rescale_coords=config.rope_rescale_coords,
            dtype=config.rope_torch_dtype,
        )

        self.layer = nn.ModuleList([SelfAttentionBlock(config) for _ in range(config.depth)])

        self.norm = build_norm(config, config.embed_dim)
        if config.untie_cls_and_patch_norms:
            self.cls_norm = build_norm(config, config.embed_dim)
        else:
            self.cls_norm = None

        init_weights(self, seed=config.seed)

    def _apply_final_norm(self, x: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """Return the normalized (prefix, patches) halves of a sequence."""
        prefix = self.num_prefix_tokens
        if self.untie_cls_and_patch_norms:
            return self.cls_norm(x[:, :prefix]), self.norm(x[:, prefix:])
        x_norm = self.norm(x)
        return x_norm[:, :prefix], x_norm[:, prefix:]

    def forward_features(
        self,
        pixel_values: torch.Tensor,
        masks: Optional[torch.Tensor] = None,
        output_hidden_states: bool = False,
        output_attentions: bool = False,
    ) -> tuple[dict[str, torch.Tensor], Optional[list[torch.Tensor]]]:
        """
        Run the backbone and return the named feature mapping.

        Args:
            pixel_values: Images of shape (batch, height, width, channels).
            masks: Optional boolean patch mask (batch, num_patches).
            output_hidden_states: Add ``hidden_state_{i}`` entries, where
                index 0 is the embedding output and index i the output of
                block i - 1.
            output_attentions: Also return per-block attention weights.

        Returns:
            Tuple of (features, attentions). ``features`` holds
            ``x_norm_clstoken`` (B, D), ``x_register_tokens`` (B, R, D),
            ``x_norm_patchtokens`` (B, P, D) and ``x_prenorm`` (B, N, D).
        """
        x, grid_h, grid_w = self.embeddings(pixel_values, masks=masks)
        rope = self.rope_embed(height=grid_h, width=grid_w)

        hidden_states: list[torch.Tensor] = [x] if output_hidden_states else []
        attentions: list[torch.Tensor] = []

        for block in self.layer:
            x, attn_weights = block(x, rope=rope, output_attentions=output_attentions)
            if output_hidden_states:
                hidden_states.append(x)
            if attn_weights is not None:
                attentions.append(attn_weights)

        x_norm_prefix, x_norm_patch = self._apply_final_norm(x)

        features: dict[str, torch.Tensor] = {
            "x_norm_clstoken": x_norm_prefix[:, 0],
            "x_register_tokens": x_norm_prefix[:, 1:],
            "x_norm_patchtokens": x_norm_patch,
            "x_prenorm": x,
        }
        if masks is not None:
            features["masks"] = masks
        for i, hidden_state in enumerate(hidden_states):
            features[f"hidden_state_{i}"] = hidden_state

        logger.debug(
            "forward_features",
            extra={
                "batch_size": x.shape[0],
                "grid": [grid_h, grid_w],
                "seq_len": x.shape[1],
            },
        )
        return features, (attentions if output_attentions else None)

    def forward(
        self,
        pixel_values: torch.Tensor,
        output_hidden_states: bool = False,
        output_attentions: bool = False,
    ) -> DinoOutput:
        """
        Forward pass producing the pooled class token and the full sequence.

        Args:
            pixel_values: Images of shape (batch, height, width, channels).
            output_hidden_states: Include the feature mapping with per-layer
                hidden states in the result.
            output_attentions: Include per-block attention weights.

        Returns:
            DinoOutput.
        """
        features, attentions = self.forward_features(
            pixel_values,
            output_hidden_states=output_hidden_states,
            output_attentions=output_attentions,
        )
        cls_token = features["x_norm_clstoken"]
        last_hidden_state = torch.cat(
            [
                cls_token.unsqueeze(1),
                features["x_register_tokens"],
                features["x_norm_patchtokens"],
            ],
            dim=1,
        )
        return DinoOutput(
            last_hidden_state=last_hidden_state,
            pooler_output=cls_token,
            hidden_states=features if output_hidden_states else None,
            attentions=attentions,
        )

    def _resolve_layer_indices(self, n: int, indices: Optional[Sequence[int]]) -> list[int]:
        depth = len(self.layer)
        if indices is None:
            if not 1 <= n <= depth:
                raise ValueError(f"n must be in [1, {depth}], got {n}")
            return list(range(depth - n, depth))
        resolved = list(indices)
        for index in resolved:
            if not 0 <= index < depth:
                raise ValueError(f"Layer index {index} out of range [0, {depth})")
        return resolved

    def get_intermediate_layers(
        self,
        pixel_values: torch.Tensor,
        n: int = 1,
        indices: Optional[Sequence[int]] = None,
        reshape: bool = False,
        return_class_token: bool = False,
        return_register_tokens: bool = False,
        norm: bool = True,
    ) -> list[IntermediateLayerOutput]:
        """
        Collect the outputs of selected blocks.

        Args:
            pixel_values: Images of shape (batch, height, width, channels).
            n: Take the last ``n`` blocks when ``indices`` is not given.
            indices: Explicit block indices in ``[0, depth)``.
            reshape: Return patches as (batch, embed_dim, grid_h, grid_w)
                instead of (batch, num_patches, embed_dim).
            return_class_token: Include the class token of each layer.
            return_register_tokens: Include the register tokens of each layer.
            norm: Apply the final normalization to each collected output.

        Returns:
            One IntermediateLayerOutput per collected block, in layer order.

        Raises:
            ValueError: If ``n`` or any index is out of range.
        """
        take = set(self._resolve_layer_indices(n, indices))

        x, grid_h, grid_w = self.embeddings(pixel_values)
        rope = self.rope_embed(height=grid_h, width=grid_w)

        collected: list[torch.Tensor] = []
        for i, block in enumerate(self.layer):
            x, _ = block(x, rope=rope)
            if i in take:
                collected.append(x)

        results: list[IntermediateLayerOutput] = []
        prefix = self.num_prefix_tokens
        for out in collected:
            if norm:
                out_prefix, patches = self._apply_final_norm(out)
            else:
                out_prefix, patches = out[:, :prefix], out[:, prefix:]

            if reshape:
                batch_size, _, dim = patches.shape
                patches = patches.reshape(batch_size, grid_h, grid_w, dim).permute(0, 3, 1, 2)

            results.append(
                IntermediateLayerOutput(
                    patches=patches,
                    cls=out_prefix[:, 0] if return_class_token else None,
                    registers=out_prefix[:, 1:] if return_register_tokens else None,
                )
            )
        return results

    def count_parameters(self) -> int:
        """
        Count total parameters.

        Returns:
            Integer count of all parameters.
        """
        return sum(p.numel() for p in self.parameters())
