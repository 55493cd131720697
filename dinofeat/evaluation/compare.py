# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Numerical comparison of extracted features against reference outputs.

Used to check that a checkpoint loaded here reproduces features computed by
an independent implementation. All statistics are computed in float64 on
CPU so the comparison itself adds no rounding noise.

Shape mismatches are reported in the result, never raised, so a comparison
over many tensors always produces a complete report.
"""

from dataclasses import dataclass
from typing import Optional

import torch

DEFAULT_MIN_COSINE = 0.999
DEFAULT_MAX_RELATIVE_L2 = 0.02


def _flat64(x: torch.Tensor) -> torch.Tensor:
    return x.detach().to(device="cpu", dtype=torch.float64).reshape(-1)


def cosine_similarity(a: torch.Tensor, b: torch.Tensor) -> float:
    """
    Cosine similarity of two tensors viewed as flat vectors.

    Two all-zero tensors are identical (1.0); one all-zero tensor against a
    non-zero one scores 0.0.

    Raises:
        ValueError: If the element counts differ.
    """
    fa, fb = _flat64(a), _flat64(b)
    if fa.numel() != fb.numel():
        raise ValueError(f"Element count mismatch: {fa.numel()} vs {fb.numel()}")
    norm_a = torch.linalg.vector_norm(fa)
    norm_b = torch.linalg.vector_norm(fb)
    if norm_a == 0 and norm_b == 0:
        return 1.0
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(torch.dot(fa, fb) / (norm_a * norm_b))


def relative_l2(actual: torch.Tensor, expected: torch.Tensor) -> float:
    """
    ``||actual - expected|| / ||expected||``.

    Falls back to the absolute error norm when ``expected`` is all zeros.
    """
    fa, fe = _flat64(actual), _flat64(expected)
    if fa.numel() != fe.numel():
        raise ValueError(f"Element count mismatch: {fa.numel()} vs {fe.numel()}")
    diff = torch.linalg.vector_norm(fa - fe)
    denom = torch.linalg.vector_norm(fe)
    if denom == 0:
        return float(diff)
    return float(diff / denom)


def arrays_close(
    actual: torch.Tensor,
    expected: torch.Tensor,
    rtol: float = 1e-4,
    atol: float = 1e-5,
) -> bool:
    """Shape-aware allclose. Different shapes are never close."""
    if tuple(actual.shape) != tuple(expected.shape):
        return False
    return bool(torch.allclose(_flat64(actual), _flat64(expected), rtol=rtol, atol=atol))


@dataclass(frozen=True)
class ComparisonReport:
    """
    Outcome of comparing one tensor against its reference.

    Statistics are None when the shapes differ.
    """

    name: str
    actual_shape: tuple[int, ...]
    expected_shape: tuple[int, ...]
    shape_match: bool
    cosine: Optional[float]
    relative_l2: Optional[float]
    max_abs_diff: Optional[float]
    mean_abs_diff: Optional[float]
    passed: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "tensor": self.name,
            "actual_shape": list(self.actual_shape),
            "expected_shape": list(self.expected_shape),
            "shape_match": self.shape_match,
            "cosine": self.cosine,
            "relative_l2": self.relative_l2,
            "max_abs_diff": self.max_abs_diff,
            "mean_abs_diff": self.mean_abs_diff,
            "passed": self.passed,
        }


def compare_tensors(
    name: str,
    actual: torch.Tensor,
    expected: torch.Tensor,
    min_cosine: float = DEFAULT_MIN_COSINE,
    max_relative_l2: float = DEFAULT_MAX_RELATIVE_L2,
) -> ComparisonReport:
    """
    Compare a tensor against its reference and decide pass/fail.

    A comparison passes when the shapes match, the cosine similarity is at
    least ``min_cosine`` and the relative L2 error is at most
    ``max_relative_l2``.
    """
    actual_shape = tuple(actual.shape)
    expected_shape = tuple(expected.shape)
    if actual_shape != expected_shape:
        return ComparisonReport(
            name=name,
            actual_shape=actual_shape,
            expected_shape=expected_shape,
            shape_match=False,
            cosine=None,
            relative_l2=None,
            max_abs_diff=None,
            mean_abs_diff=None,
            passed=False,
        )

    abs_diff = (_flat64(actual) - _flat64(expected)).abs()
    cosine = cosine_similarity(actual, expected)
    rel_l2 = relative_l2(actual, expected)
    return ComparisonReport(
        name=name,
        actual_shape=actual_shape,
        expected_shape=expected_shape,
        shape_match=True,
        cosine=cosine,
        relative_l2=rel_l2,
        max_abs_diff=float(abs_diff.max()) if abs_diff.numel() else 0.0,
        mean_abs_diff=float(abs_diff.mean()) if abs_diff.numel() else 0.0,
        passed=cosine >= min_cosine and rel_l2 <= max_relative_l2,
    )
