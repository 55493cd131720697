# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Config loader: reads a pretrained config file and produces a validated,
frozen model configuration.

The loading pipeline is linear:
  1. Read raw text from the file
  2. Parse as JSON (``.json``) or YAML (anything else) into a plain dict
  3. Hand the dict to pydantic for schema validation
  4. Translate the schema into a VisionTransformerConfig

If anything goes wrong at any step, we fail immediately with a clear error.
There is no retry logic and no fallback defaults beyond the schema's own.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from dinofeat.config.exceptions import ConfigLoadError, ConfigValidationError
from dinofeat.config.schema import PretrainedConfig
from dinofeat.model.config import VisionTransformerConfig


def _read_config_file(config_path: Path) -> dict[str, Any]:
    """
    Read a JSON or YAML file and return the parsed dict.

    JSON goes through the json module because PyYAML reads exponent floats
    without a dot (``1e-05``) as strings.

    Raises:
        ConfigLoadError: If the file doesn't exist, isn't readable, or can't
            be parsed into a mapping.
    """
    if not config_path.exists():
        raise ConfigLoadError(f"Config file not found: {config_path}")

    if not config_path.is_file():
        raise ConfigLoadError(f"Config path is not a file: {config_path}")

    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except OSError as err:
        raise ConfigLoadError(f"Cannot read config file {config_path}: {err}") from err

    if config_path.suffix.lower() == ".json":
        try:
            parsed = json.loads(raw_text)
        except json.JSONDecodeError as err:
            raise ConfigLoadError(f"Invalid JSON in {config_path}: {err}") from err
    else:
        try:
            parsed = yaml.safe_load(raw_text)
        except yaml.YAMLError as err:
            raise ConfigLoadError(f"Invalid YAML in {config_path}: {err}") from err

    if not isinstance(parsed, dict):
        raise ConfigLoadError(
            f"Config file must contain a mapping, got {type(parsed).__name__}"
        )

    return parsed


def load_config(config_path: Path) -> PretrainedConfig:
    """
    Load and validate a pretrained config file.

    Args:
        config_path: Path to a ``config.json`` (or YAML) file.

    Returns:
        A validated, frozen PretrainedConfig instance.

    Raises:
        ConfigLoadError: File I/O or parse failures.
        ConfigValidationError: Schema violations (wrong types, bad ranges).
    """
    raw_data = _read_config_file(Path(config_path))

    try:
        return PretrainedConfig.model_validate(raw_data)
    except ValidationError as err:
        raise ConfigValidationError(
            f"Config validation failed for {config_path}:\n{err}"
        ) from err


def to_model_config(schema: PretrainedConfig, seed: int = 42) -> VisionTransformerConfig:
    """
    Bridge between the file schema and the model constructor.

    The published files use names like ``hidden_size`` and ``use_gated_mlp``;
    the model expects ``embed_dim`` and ``ffn_type``. This function does that
    translation.

    Raises:
        ConfigValidationError: If the combination is rejected by the model
            configuration.
    """
    try:
        return VisionTransformerConfig(
            img_size=schema.image_size,
            patch_size=schema.patch_size,
            in_channels=schema.num_channels,
            embed_dim=schema.hidden_size,
            depth=schema.num_hidden_layers,
            num_heads=schema.num_attention_heads,
            ffn_ratio=schema.mlp_ratio,
            intermediate_size=schema.intermediate_size,
            query_bias=schema.query_bias,
            key_bias=schema.key_bias,
            value_bias=schema.value_bias,
            proj_bias=schema.proj_bias,
            ffn_bias=schema.mlp_bias,
            layerscale_init=schema.layerscale_value,
            norm_eps=schema.layer_norm_eps,
            ffn_type="swiglu" if schema.use_gated_mlp else "mlp",
            num_register_tokens=schema.num_register_tokens,
            rope_base=schema.rope_theta,
            rope_normalize_coords=schema.rope_normalize_coords,
            rope_rescale_coords=schema.rope_rescale_coords,
            rope_dtype=schema.rope_dtype,
            untie_cls_and_patch_norms=schema.use_separate_norms_for_cls_and_patches,
            seed=seed,
        )
    except ValueError as err:
        raise ConfigValidationError(f"Inconsistent model configuration: {err}") from err
