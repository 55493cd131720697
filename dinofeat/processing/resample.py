# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Pillow-compatible bilinear resize for 8-bit RGB images.

Reproduces ``PIL.Image.resize(size, Image.BILINEAR)`` byte for byte. This is
not generic bilinear interpolation: Pillow widens the triangle filter by the
downscale factor, normalizes each output pixel's window, quantizes the
weights to 22-bit fixed point and accumulates in integers. Reference
features are computed on Pillow-resized images, so anything else shifts the
pixels by a level or two and the features with them.

The resize is separable and always runs horizontal first (full source
height, target width), then vertical on that intermediate buffer.

Coefficients are computed in plain Python with float64 arithmetic, the same
precision Pillow uses. The multiply-accumulate runs on int64 tensors one
filter tap at a time. With 8-bit inputs the sums fit comfortably in 32
bits, so the int64 result is identical to Pillow's int32 one.
"""

import math
from dataclasses import dataclass
from typing import Callable, Union

import torch

PRECISION_BITS = 22
BILINEAR_SUPPORT = 1.0


def bilinear_filter(x: float) -> float:
    """Triangle filter ``max(0, 1 - |x|)``."""
    x = abs(x)
    if x < 1.0:
        return 1.0 - x
    return 0.0


@dataclass(frozen=True)
class ResampleCoeffs:
    """
    Per-output-pixel filter windows along one axis.

    Attributes:
        ksize: Window capacity; every row of ``weights`` has this length.
        bounds: ``(xmin, count)`` per output pixel. The window covers source
            indices ``xmin .. xmin + count - 1``.
        weights: Normalized float weights, zero-padded to ``ksize``.
    """

    ksize: int
    bounds: list[tuple[int, int]]
    weights: list[list[float]]


def precompute_coeffs(
    in_size: int,
    out_size: int,
    support: float = BILINEAR_SUPPORT,
    filter_fn: Callable[[float], float] = bilinear_filter,
) -> ResampleCoeffs:
    """
    Compute the filter windows for resizing one axis.

    Args:
        in_size: Source length along the axis.
        out_size: Target length along the axis.
        support: Half-width of the filter at scale 1.
        filter_fn: The filter kernel.

    Returns:
        ResampleCoeffs for the axis.
    """
    scale = in_size / out_size
    filterscale = max(scale, 1.0)
    support = support * filterscale
    ksize = int(math.ceil(support)) * 2 + 1
    inv_filterscale = 1.0 / filterscale

    bounds: list[tuple[int, int]] = []
    weights: list[list[float]] = []
    for xx in range(out_size):
        center = (xx + 0.5) * scale
        # int() truncates toward zero, like a C cast
        xmin = max(int(center - support + 0.5), 0)
        xmax = min(int(center + support + 0.5), in_size) - xmin

        window = [
            filter_fn((x + xmin - center + 0.5) * inv_filterscale) for x in range(xmax)
        ]
        total = sum(window)
        if total != 0.0:
            window = [w / total for w in window]

        weights.append(window + [0.0] * (ksize - xmax))
        bounds.append((xmin, xmax))

    return ResampleCoeffs(ksize=ksize, bounds=bounds, weights=weights)


def normalize_coeffs(coeffs: ResampleCoeffs) -> list[list[int]]:
    """
    Quantize float weights to signed fixed point with PRECISION_BITS bits.

    Rounds half away from zero, separately for each sign.
    """
    scale = float(1 << PRECISION_BITS)
    quantized = []
    for window in coeffs.weights:
        row = []
        for value in window:
            if value < 0:
                row.append(int(-0.5 + value * scale))
            else:
                row.append(int(0.5 + value * scale))
        quantized.append(row)
    return quantized


def _resample_axis(pixels: torch.Tensor, out_size: int, axis: int) -> torch.Tensor:
    """
    Resample an int64 (H, W, C) buffer along ``axis`` (0 rows, 1 columns).
    """
    in_size = pixels.shape[axis]
    coeffs = precompute_coeffs(in_size, out_size)
    kernel = torch.tensor(normalize_coeffs(coeffs), dtype=torch.int64)
    starts = torch.tensor([xmin for xmin, _ in coeffs.bounds], dtype=torch.int64)

    out_shape = list(pixels.shape)
    out_shape[axis] = out_size
    acc = torch.full(out_shape, 1 << (PRECISION_BITS - 1), dtype=torch.int64)

    # Taps past a window's end carry weight 0, so clamping the index is safe.
    for tap in range(coeffs.ksize):
        index = (starts + tap).clamp_(max=in_size - 1)
        source = pixels.index_select(axis, index)
        weight = kernel[:, tap]
        if axis == 0:
            acc += source * weight[:, None, None]
        else:
            acc += source * weight[None, :, None]

    return (acc >> PRECISION_BITS).clamp_(0, 255)


def resize_bilinear(
    pixels: torch.Tensor,
    size: Union[int, tuple[int, int]],
) -> torch.Tensor:
    """
    Resize an 8-bit RGB image exactly like Pillow's BILINEAR filter.

    Args:
        pixels: uint8 tensor of shape (height, width, 3).
        size: Target edge for a square output, or ``(width, height)`` in
            Pillow's order.

    Returns:
        uint8 tensor of shape (target_height, target_width, 3).

    Raises:
        ValueError: If the input is not an (H, W, 3) uint8 image, or either
            the source or the target is empty.
    """
    if pixels.dim() != 3 or pixels.shape[-1] != 3:
        raise ValueError(f"Expected (H, W, 3) pixels, got shape {tuple(pixels.shape)}")
    if pixels.dtype != torch.uint8:
        raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
    if isinstance(size, int):
        out_w = out_h = size
    else:
        out_w, out_h = size
    src_h, src_w = pixels.shape[0], pixels.shape[1]
    if min(src_h, src_w, out_h, out_w) <= 0:
        raise ValueError(
            f"Cannot resize {src_w}x{src_h} image to {out_w}x{out_h}: sizes must be positive"
        )

    buffer = pixels.to(torch.int64)
    buffer = _resample_axis(buffer, out_w, axis=1)
    buffer = _resample_axis(buffer, out_h, axis=0)
    return buffer.to(torch.uint8)


def pixels_from_rgb_bytes(data: bytes, width: int, height: int) -> torch.Tensor:
    """
    Wrap a packed RGB byte buffer as a (height, width, 3) uint8 tensor.

    Raises:
        ValueError: If the buffer length does not match the size.
    """
    expected = width * height * 3
    if len(data) != expected:
        raise ValueError(
            f"RGB buffer has {len(data)} bytes, expected {expected} for {width}x{height}"
        )
    return torch.frombuffer(bytearray(data), dtype=torch.uint8).reshape(height, width, 3)
