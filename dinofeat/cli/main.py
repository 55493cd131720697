# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for dinofeat.

Every operation is a subcommand of ``dinofeat``. The global ``--log-level``
option is inherited by every subcommand through argparse's parent parser
mechanism.

Usage:
    dinofeat info [--model-dir DIR]
    dinofeat extract --model-dir DIR --image cat.jpg --output feats.safetensors
    dinofeat compare --actual feats.safetensors --expected reference.safetensors
"""

import argparse
import sys

from dinofeat.cli.commands import handle_compare, handle_extract, handle_info
from dinofeat.cli.exit_codes import USER_ERROR
from dinofeat.evaluation.compare import DEFAULT_MAX_RELATIVE_L2, DEFAULT_MIN_COSINE


def _build_global_parser() -> argparse.ArgumentParser:
    """
    Build the parent parser with global options.

    The parent has add_help=False so that its help text doesn't collide
    with the subcommand parsers.
    """
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level.",
    )
    return parent


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    """Register all subcommands and their arguments."""
    info = subparsers.add_parser(
        "info", parents=[parent], help="Display environment and model architecture info."
    )
    info.add_argument(
        "--model-dir",
        type=str,
        default=None,
        dest="model_dir",
        help="Directory with a config.json to describe.",
    )
    info.set_defaults(func=handle_info)

    extract = subparsers.add_parser(
        "extract", parents=[parent], help="Extract features for one image."
    )
    extract.add_argument("--model-dir", type=str, required=True, dest="model_dir")
    extract.add_argument("--image", type=str, required=True, help="Input image file.")
    extract.add_argument(
        "--output", type=str, required=True, help="Destination safetensors file."
    )
    extract.add_argument("--size", type=int, default=224, help="Square input size in pixels.")
    extract.add_argument(
        "--device", type=str, default="cpu", help="Torch device, or 'auto'."
    )
    extract.add_argument(
        "--hidden-states",
        action="store_true",
        default=False,
        dest="hidden_states",
        help="Also write every per-layer hidden state.",
    )
    extract.add_argument(
        "--attentions",
        action="store_true",
        default=False,
        help="Also write every per-layer attention map.",
    )
    extract.set_defaults(func=handle_extract)

    compare = subparsers.add_parser(
        "compare", parents=[parent], help="Compare a feature file against a reference."
    )
    compare.add_argument("--actual", type=str, required=True)
    compare.add_argument("--expected", type=str, required=True)
    compare.add_argument(
        "--min-cosine",
        type=float,
        default=DEFAULT_MIN_COSINE,
        dest="min_cosine",
    )
    compare.add_argument(
        "--max-rel-l2",
        type=float,
        default=DEFAULT_MAX_RELATIVE_L2,
        dest="max_rel_l2",
    )
    compare.set_defaults(func=handle_compare)


def main() -> None:
    """
    Main CLI entrypoint. This is what pyproject.toml's [project.scripts] points to.

    If no subcommand is given, we show help and exit with USER_ERROR.
    """
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="dinofeat",
        description="dinofeat: DINOv3 feature extraction.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command")
    _register_subcommands(subparsers, parent)

    args = root_parser.parse_args()

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
