"""SSIM-based image comparison helpers."""

from __future__ import annotations

from typing import Tuple

import numpy as np
from PIL import Image
from skimage.metrics import structural_similarity as ssim

_DEFAULT_WIN_SIZE = 7


def compute_ssim(a: Image.Image, b: Image.Image) -> float:
    """Return the structural similarity index between two images."""
    a_gray = np.asarray(a.convert("L"), dtype=np.float32)
    b_gray = np.asarray(b.convert("L"), dtype=np.float32)
    if a_gray.shape != b_gray.shape:
        raise ValueError(f"SSIM needs equally sized images, got {a_gray.shape} and {b_gray.shape}")
    smallest = min(a_gray.shape)
    win_size = min(_DEFAULT_WIN_SIZE, smallest if smallest % 2 else smallest - 1)
    if win_size < 3:
        # Too small for a sliding window; fall back to exact equality.
        return 1.0 if np.array_equal(a_gray, b_gray) else 0.0
    return float(ssim(a_gray, b_gray, data_range=255.0, win_size=win_size))


def compare_with_ssim(a: Image.Image, b: Image.Image, threshold: float) -> Tuple[bool, float]:
    score = compute_ssim(a, b)
    return score >= threshold, score
