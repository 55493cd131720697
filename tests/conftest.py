# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for dinofeat tests.

Fixtures here are available to every test file automatically. The models
they build are tiny (32 px inputs, 8 px patches, 2 blocks) so every test
runs on CPU in well under a second.
"""

import json
from pathlib import Path

import pytest
import torch
from PIL import Image
from safetensors.torch import save_file

from dinofeat.model.config import VisionTransformerConfig
from dinofeat.model.transformer import DinoVisionTransformer

TINY_PRETRAINED_CONFIG: dict[str, object] = {
    "architectures": ["DINOv3ViTModel"],
    "model_type": "dinov3_vit",
    "image_size": 32,
    "patch_size": 8,
    "num_channels": 3,
    "hidden_size": 32,
    "num_hidden_layers": 2,
    "num_attention_heads": 2,
    "intermediate_size": 128,
    "hidden_act": "gelu",
    "layer_norm_eps": 1e-05,
    "layerscale_value": 1.0,
    "drop_path_rate": 0.0,
    "query_bias": True,
    "key_bias": False,
    "value_bias": True,
    "proj_bias": True,
    "mlp_bias": True,
    "use_gated_mlp": False,
    "num_register_tokens": 2,
    "rope_theta": 100.0,
    "pos_embed_rescale": 2.0,
    "torch_dtype": "float32",
}


def make_tiny_config(**overrides: object) -> VisionTransformerConfig:
    """The model-side twin of TINY_PRETRAINED_CONFIG."""
    values: dict[str, object] = dict(
        img_size=32,
        patch_size=8,
        embed_dim=32,
        depth=2,
        num_heads=2,
        intermediate_size=128,
        num_register_tokens=2,
        layerscale_init=1.0,
        seed=42,
    )
    values.update(overrides)
    return VisionTransformerConfig(**values)


@pytest.fixture()
def tiny_config() -> VisionTransformerConfig:
    return make_tiny_config()


@pytest.fixture()
def tiny_model(tiny_config: VisionTransformerConfig) -> DinoVisionTransformer:
    """A tiny backbone in eval mode with seeded random weights."""
    model = DinoVisionTransformer(tiny_config)
    model.eval()
    return model


@pytest.fixture()
def model_dir(tmp_path: Path, tiny_model: DinoVisionTransformer) -> Path:
    """
    A directory laid out like a published checkpoint: config.json plus
    model.safetensors holding the tiny model's weights.
    """
    directory = tmp_path / "dinov3-tiny"
    directory.mkdir()
    (directory / "config.json").write_text(
        json.dumps(TINY_PRETRAINED_CONFIG, indent=2), encoding="utf-8"
    )
    save_file(tiny_model.state_dict(), str(directory / "model.safetensors"))
    return directory


@pytest.fixture()
def pixel_values() -> torch.Tensor:
    """A deterministic (1, 32, 32, 3) channels-last input."""
    generator = torch.Generator().manual_seed(0)
    return torch.randn(1, 32, 32, 3, generator=generator)


def make_gradient_image(width: int, height: int) -> Image.Image:
    """An RGB image with distinct values in every channel and position."""
    data = bytes(
        value
        for y in range(height)
        for x in range(width)
        for value in ((x * 7 + y * 3) % 256, (x * 13 + 50) % 256, (y * 11 + x) % 256)
    )
    return Image.frombytes("RGB", (width, height), data)


@pytest.fixture()
def image_file(tmp_path: Path) -> Path:
    """A 40x30 PNG on disk."""
    path = tmp_path / "gradient.png"
    make_gradient_image(40, 30).save(path)
    return path


@pytest.fixture()
def config_factory():
    """``make_tiny_config`` as a fixture, for tests that vary the architecture."""
    return make_tiny_config


@pytest.fixture()
def image_factory():
    """``make_gradient_image`` as a fixture."""
    return make_gradient_image
