# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the dinofeat CLI.

Each function here corresponds to one CLI subcommand and returns an exit
code from ``exit_codes``. Library exceptions are caught here and nowhere
else, then mapped to those codes.

No print() calls. Everything goes through the structured logger.
"""

import argparse
import platform
from pathlib import Path

import torch
from safetensors import SafetensorError
from safetensors.torch import load_file, save_file

from dinofeat.cli.exit_codes import CONFIG_ERROR, RUNTIME_ERROR, SUCCESS, USER_ERROR, VALIDATION_ERROR
from dinofeat.config.exceptions import ConfigError
from dinofeat.config.loader import load_config, to_model_config
from dinofeat.evaluation.compare import compare_tensors
from dinofeat.inference.engine.core import FeatureExtractor
from dinofeat.inference.loader.core import CONFIG_FILENAME, load_pretrained
from dinofeat.logging.logger import get_logger
from dinofeat.processing.exceptions import PreprocessError
from dinofeat.processing.processor import ImageProcessor


def handle_info(args: argparse.Namespace) -> int:
    """Display environment information and, optionally, a model's architecture."""
    logger = get_logger("dinofeat.cli.info", log_level=args.log_level)

    from dinofeat import __version__

    logger.info(
        "System information",
        extra={
            "dinofeat_version": __version__,
            "torch_version": torch.__version__,
            "python_version": platform.python_version(),
            "platform": platform.platform(),
            "cuda_available": torch.cuda.is_available(),
        },
    )

    if args.model_dir is None:
        return SUCCESS

    try:
        config = to_model_config(load_config(Path(args.model_dir) / CONFIG_FILENAME))
    except ConfigError as err:
        logger.error("Configuration error", extra={"command": "info", "error": str(err)})
        return CONFIG_ERROR

    logger.info(
        "Model architecture",
        extra={
            "model_dir": args.model_dir,
            "embed_dim": config.embed_dim,
            "depth": config.depth,
            "num_heads": config.num_heads,
            "patch_size": config.patch_size,
            "num_register_tokens": config.num_register_tokens,
            "ffn_type": config.ffn_type,
            "mlp_hidden_dim": config.mlp_hidden_dim,
            "untie_cls_and_patch_norms": config.untie_cls_and_patch_norms,
        },
    )
    return SUCCESS


def handle_extract(args: argparse.Namespace) -> int:
    """Extract features for one image and write them to a safetensors file."""
    logger = get_logger("dinofeat.cli.extract", log_level=args.log_level)

    try:
        loaded = load_pretrained(Path(args.model_dir), device=args.device)
    except ConfigError as err:
        logger.error("Configuration error", extra={"command": "extract", "error": str(err)})
        return CONFIG_ERROR
    except FileNotFoundError as err:
        logger.error("Model files missing", extra={"command": "extract", "error": str(err)})
        return USER_ERROR
    except Exception as err:
        logger.error(
            "Model load failed",
            extra={"command": "extract", "error": str(err)},
            exc_info=True,
        )
        return RUNTIME_ERROR

    extractor = FeatureExtractor(loaded.model, ImageProcessor(size=args.size))

    try:
        output = extractor.extract(
            args.image,
            output_hidden_states=args.hidden_states,
            output_attentions=args.attentions,
        )
    except PreprocessError as err:
        logger.error("Invalid image", extra={"image": args.image, "error": str(err)})
        return USER_ERROR
    except Exception as err:
        logger.error(
            "Feature extraction failed",
            extra={"command": "extract", "error": str(err)},
            exc_info=True,
        )
        return RUNTIME_ERROR

    tensors: dict[str, torch.Tensor] = {
        "pooler_output": output.pooler_output,
        "last_hidden_state": output.last_hidden_state,
    }
    if output.hidden_states is not None:
        tensors.update(output.hidden_states)
    if output.attentions is not None:
        for i, attention in enumerate(output.attentions):
            tensors[f"attention_{i}"] = attention

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    # Several outputs are views of one buffer; safetensors rejects shared storage.
    save_file(
        {name: t.detach().cpu().contiguous().clone() for name, t in tensors.items()},
        str(output_path),
    )
    logger.info(
        "Features written",
        extra={
            "output": str(output_path),
            "tensors": sorted(tensors.keys()),
            "pooler_shape": list(output.pooler_output.shape),
        },
    )
    return SUCCESS


def handle_compare(args: argparse.Namespace) -> int:
    """Compare two feature files tensor by tensor."""
    logger = get_logger("dinofeat.cli.compare", log_level=args.log_level)

    try:
        actual = load_file(args.actual)
        expected = load_file(args.expected)
    except (OSError, SafetensorError) as err:
        logger.error("Cannot read feature file", extra={"error": str(err)})
        return USER_ERROR

    missing = sorted(set(expected) - set(actual))
    if missing:
        logger.error("Tensors missing from actual output", extra={"missing": missing})

    failed = bool(missing)
    for name in sorted(set(expected) & set(actual)):
        report = compare_tensors(
            name,
            actual[name],
            expected[name],
            min_cosine=args.min_cosine,
            max_relative_l2=args.max_rel_l2,
        )
        if report.passed:
            logger.info("Tensor matches reference", extra=report.to_dict())
        else:
            failed = True
            logger.error("Tensor differs from reference", extra=report.to_dict())

    if failed:
        return VALIDATION_ERROR
    logger.info("All tensors match", extra={"count": len(expected)})
    return SUCCESS
