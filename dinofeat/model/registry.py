# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Layer type registry for dinofeat.

The feed-forward and normalization layers come in tagged variants selected
by a config string (``ffn_type``, ``norm_type``). Each family has its own
registry mapping that tag to the concrete ``nn.Module`` class, so the block
and the stack resolve a variant once at construction and never inspect types
afterwards.

Registries are populated exactly once at import time via
``_register_builtins()`` and remain deterministic thereafter.
"""

import logging

import torch.nn as nn

logger = logging.getLogger(__name__)

# ── FFN Registry ────────────────────────────────────────────────────────────

_FFN_REGISTRY: dict[str, type[nn.Module]] = {}


def register_ffn(name: str, cls: type[nn.Module]) -> None:
    """
    Register a feed-forward layer class under a unique name.

    Args:
        name: Config-level identifier (e.g. ``"mlp"``, ``"swiglu"``).
        cls: The ``nn.Module`` subclass to register.

    Raises:
        ValueError: If ``name`` is already registered.
    """
    if name in _FFN_REGISTRY:
        raise ValueError(
            f"FFN type '{name}' is already registered to {_FFN_REGISTRY[name].__name__}"
        )
    _FFN_REGISTRY[name] = cls
    logger.debug("registered_ffn", extra={"ffn_type": name, "cls": cls.__name__})


def get_ffn(name: str) -> type[nn.Module]:
    """
    Retrieve a registered feed-forward class by name.

    Raises:
        KeyError: If ``name`` is not registered.
    """
    if name not in _FFN_REGISTRY:
        available = sorted(_FFN_REGISTRY.keys())
        raise KeyError(f"Unknown FFN type '{name}'. Available: {available}")
    return _FFN_REGISTRY[name]


def list_ffn_types() -> list[str]:
    """Return sorted list of all registered FFN type names."""
    return sorted(_FFN_REGISTRY.keys())


# ── Norm Registry ───────────────────────────────────────────────────────────

_NORM_REGISTRY: dict[str, type[nn.Module]] = {}


def register_norm(name: str, cls: type[nn.Module]) -> None:
    """
    Register a normalization layer class under a unique name.

    The class must accept ``(dim, eps=...)``.

    Raises:
        ValueError: If ``name`` is already registered.
    """
    if name in _NORM_REGISTRY:
        raise ValueError(
            f"Norm type '{name}' is already registered to {_NORM_REGISTRY[name].__name__}"
        )
    _NORM_REGISTRY[name] = cls
    logger.debug("registered_norm", extra={"norm_type": name, "cls": cls.__name__})


def get_norm(name: str) -> type[nn.Module]:
    """
    Retrieve a registered normalization class by name.

    Raises:
        KeyError: If ``name`` is not registered.
    """
    if name not in _NORM_REGISTRY:
        available = sorted(_NORM_REGISTRY.keys())
        raise KeyError(f"Unknown Norm type '{name}'. Available: {available}")
    return _NORM_REGISTRY[name]


def list_norm_types() -> list[str]:
    """Return sorted list of all registered Norm type names."""
    return sorted(_NORM_REGISTRY.keys())


# ── Builtin Registration ───────────────────────────────────────────────────

_BUILTINS_REGISTERED: bool = False


def _register_builtins() -> None:
    """
    Register all built-in layer implementations.

    Importing the layer subpackages triggers their ``register_*`` calls.
    This function is idempotent.
    """
    global _BUILTINS_REGISTERED
    if _BUILTINS_REGISTERED:
        return

    import dinofeat.model.layers.ffn  # noqa: F401
    import dinofeat.model.layers.norm  # noqa: F401

    _BUILTINS_REGISTERED = True
    logger.debug(
        "builtins_registered",
        extra={
            "ffn_types": list_ffn_types(),
            "norm_types": list_norm_types(),
        },
    )


_register_builtins()
