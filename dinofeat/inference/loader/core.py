# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Pretrained checkpoint loader.

A model directory holds:
  config.json          architecture (published DINOv3 format)
  model.safetensors    weights, or any *.pt state dict as a fallback
  metadata.json        optional, may carry a ``weights_sha256`` checksum

The loader is strict. A missing file, a checksum mismatch, or a state dict
whose keys don't line up exactly with the model is an immediate error.
Parameter names and layouts in the checkpoint are the model's own, so
nothing is renamed or transposed on the way in.

No network calls happen here. Fetching checkpoints is the caller's job.
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import torch
from safetensors.torch import load_file

from dinofeat.config.exceptions import ConfigLoadError
from dinofeat.config.loader import load_config, to_model_config
from dinofeat.logging.logger import get_logger
from dinofeat.model.config import VisionTransformerConfig
from dinofeat.model.factory import build_model
from dinofeat.model.transformer import DinoVisionTransformer
from dinofeat.utils.hashing import compute_sha256

logger: logging.Logger = get_logger(__name__)

CONFIG_FILENAME = "config.json"
SAFETENSORS_FILENAME = "model.safetensors"
METADATA_FILENAME = "metadata.json"


@dataclass(frozen=True)
class LoadedModel:
    """A ready model plus everything that describes where it came from."""

    model: DinoVisionTransformer
    model_config: VisionTransformerConfig
    device: torch.device
    weights_path: Path
    metadata: dict[str, object]


def resolve_device(device_str: str) -> torch.device:
    """
    Turn a device string into a torch device.

    "auto" picks CUDA if available, then MPS, otherwise CPU.
    """
    if device_str == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda")
        if torch.backends.mps.is_available():
            return torch.device("mps")
        return torch.device("cpu")
    return torch.device(device_str)


def _find_model_weights(model_dir: Path) -> Path:
    """
    Locate the weights file: model.safetensors first, then the first *.pt
    file in sorted order.
    """
    standard = model_dir / SAFETENSORS_FILENAME
    if standard.is_file():
        return standard

    pt_files = sorted(model_dir.glob("*.pt"))
    if pt_files:
        return pt_files[0]

    raise FileNotFoundError(
        f"No model weights ({SAFETENSORS_FILENAME} or *.pt) found in {model_dir}"
    )


def _verify_checksum(weights_path: Path, expected_hash: Optional[str]) -> None:
    """
    Compare the weights file against a known SHA256.

    Published checkpoints don't ship a checksum, so a missing one only logs.
    A present one that doesn't match aborts the load.
    """
    if expected_hash is None:
        logger.debug("No checksum available for weights, skipping verification")
        return

    actual_hash = compute_sha256(weights_path)
    if actual_hash != expected_hash.lower():
        raise RuntimeError(
            f"Weights checksum mismatch for {weights_path.name}. "
            f"Expected: {expected_hash[:16]}... "
            f"Got: {actual_hash[:16]}... "
            f"The file may be corrupted."
        )
    logger.info("Weights checksum verified", extra={"hash": actual_hash[:16] + "..."})


def _load_metadata(model_dir: Path) -> dict[str, object]:
    meta_path = model_dir / METADATA_FILENAME
    if not meta_path.is_file():
        return {}
    try:
        metadata = json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as err:
        raise ConfigLoadError(f"Cannot read {meta_path}: {err}") from err
    if not isinstance(metadata, dict):
        raise ConfigLoadError(
            f"{meta_path} must contain a JSON object, got {type(metadata).__name__}"
        )
    return metadata


def load_state_dict(weights_path: Path) -> dict[str, torch.Tensor]:
    """
    Read a flat parameter mapping from a safetensors or torch file.

    Tensors are loaded on CPU.
    """
    if weights_path.suffix == ".safetensors":
        return load_file(str(weights_path), device="cpu")
    return torch.load(weights_path, map_location="cpu", weights_only=True)


def load_pretrained(
    model_dir: Path,
    device: str = "cpu",
    seed: int = 42,
) -> LoadedModel:
    """
    Load a pretrained backbone from a model directory.

    Steps:
      1. Parse and validate config.json
      2. Locate the weights and verify the optional checksum
      3. Build the model from config
      4. Load the weights strictly (no missing or unexpected keys)
      5. Move to the target device and switch to eval mode

    Args:
        model_dir: Directory holding config.json and the weights.
        device: Torch device string, or "auto".
        seed: Seed for the initialization that the weights overwrite.

    Returns:
        LoadedModel.

    Raises:
        FileNotFoundError: If the directory or the weights are missing.
        ConfigError: If config.json is missing or invalid, or metadata.json
            is not a JSON object.
        RuntimeError: On checksum or state-dict mismatch.
    """
    start = time.monotonic()
    model_dir = Path(model_dir)
    if not model_dir.is_dir():
        raise FileNotFoundError(f"Model directory not found: {model_dir}")

    model_config = to_model_config(load_config(model_dir / CONFIG_FILENAME), seed=seed)

    metadata = _load_metadata(model_dir)
    weights_path = _find_model_weights(model_dir)
    expected_hash = metadata.get("weights_sha256")
    _verify_checksum(weights_path, expected_hash if isinstance(expected_hash, str) else None)

    model = build_model(model_config)
    state_dict = load_state_dict(weights_path)
    model.load_state_dict(state_dict, strict=True)

    target = resolve_device(device)
    model = model.to(target)
    model.eval()

    logger.info(
        "Model loaded",
        extra={
            "model_dir": str(model_dir),
            "weights": weights_path.name,
            "device": str(target),
            "parameters": model.count_parameters(),
            "tensors": len(state_dict),
            "elapsed_s": round(time.monotonic() - start, 3),
        },
    )

    return LoadedModel(
        model=model,
        model_config=model_config,
        device=target,
        weights_path=weights_path,
        metadata=metadata,
    )
