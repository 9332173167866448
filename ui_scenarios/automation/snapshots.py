"""Baseline snapshot storage and tolerant image comparison."""

from __future__ import annotations

import io
import logging
import re
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import numpy as np
from PIL import Image

try:
    from ui_scenarios.automation.vision.ssim import compare_with_ssim
except Exception:  # pragma: no cover - optional dependency
    compare_with_ssim = None  # type: ignore

logger = logging.getLogger(__name__)

ImageRef = Union[Image.Image, bytes, bytearray, str, Path, np.ndarray]

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def to_image(ref: Any) -> Image.Image:
    """Normalise a driver screenshot reference into an RGBA PIL image."""

    if isinstance(ref, Image.Image):
        return ref.convert("RGBA")
    if isinstance(ref, (bytes, bytearray)):
        with Image.open(io.BytesIO(bytes(ref))) as img:
            return img.convert("RGBA")
    if isinstance(ref, (str, Path)):
        with Image.open(Path(ref)) as img:
            return img.convert("RGBA")
    if isinstance(ref, np.ndarray):
        return Image.fromarray(ref).convert("RGBA")
    raise TypeError(f"Unsupported image reference: {type(ref).__name__}")


def snapshot_filename(name: str) -> str:
    cleaned = _UNSAFE_NAME.sub("_", str(name).strip()).strip("._")
    if not cleaned:
        raise ValueError("Snapshot name must contain at least one usable character")
    return f"{cleaned}.png"


@dataclass(slots=True)
class ScreenshotResult:
    passed: bool
    diff_percent: float
    diff_image: Optional[Image.Image]
    highlight_image: Optional[Image.Image]
    ssim_score: Optional[float]
    ssim_threshold: Optional[float]


class ScreenshotComparator:
    """Encapsulates screenshot diff/SSIM logic."""

    def __init__(self, use_ssim: bool = False, ssim_threshold: float = 0.99) -> None:
        self._ssim_requested = bool(use_ssim)
        self._ssim_threshold = float(ssim_threshold)
        self._ssim_available = compare_with_ssim is not None
        self._use_ssim = self._ssim_requested and self._ssim_available

    @property
    def ssim_available(self) -> bool:
        return self._ssim_available

    @property
    def using_ssim(self) -> bool:
        return self._use_ssim

    def compare(
        self,
        original: Image.Image,
        test: Image.Image,
        diff_tolerance_percent: float = 0.0,
    ) -> ScreenshotResult:
        original = original.convert("RGBA")
        test = test.convert("RGBA")

        if original.size != test.size:
            logger.warning("Screenshot sizes differ: %s vs %s", original.size, test.size)
            test = test.resize(original.size)

        ssim_score: Optional[float] = None
        ssim_pass = True
        if self._use_ssim:
            try:
                ssim_pass, ssim_score = compare_with_ssim(original, test, self._ssim_threshold)
                logger.debug("SSIM score %.4f (threshold %.4f)", ssim_score, self._ssim_threshold)
            except Exception as exc:  # pragma: no cover - numerical differences
                logger.debug("SSIM comparison failed: %s", exc)
                ssim_pass = True
                ssim_score = None

        a = np.asarray(original, dtype=np.int16)
        b = np.asarray(test, dtype=np.int16)
        absdiff = np.abs(a - b)
        diff_mask = np.any(absdiff > 0, axis=2)
        diff_percent = (int(diff_mask.sum()) / diff_mask.size) * 100.0

        pixel_pass = diff_percent <= diff_tolerance_percent
        passed = pixel_pass and (ssim_pass if self._use_ssim else True)
        return ScreenshotResult(
            passed=passed,
            diff_percent=diff_percent,
            diff_image=self._diff_image(absdiff),
            highlight_image=self._highlight_image(original, diff_mask),
            ssim_score=ssim_score,
            ssim_threshold=self._ssim_threshold if self._use_ssim else None,
        )

    @staticmethod
    def _diff_image(absdiff: np.ndarray) -> Image.Image:
        perpix = absdiff[..., :3].max(axis=2)
        if perpix.max() > 0:
            perpix = (perpix.astype(np.float32) / perpix.max()) * 255.0
        return Image.fromarray(perpix.astype(np.uint8))

    def _highlight_image(self, original: Image.Image, diff_mask: np.ndarray) -> Optional[Image.Image]:
        if not diff_mask.any():
            return None
        overlay = np.zeros((diff_mask.shape[0], diff_mask.shape[1], 4), dtype=np.uint8)
        overlay[..., 0] = 255
        overlay[..., 3] = np.where(diff_mask, 96, 0)
        hi = Image.alpha_composite(original, Image.fromarray(overlay))
        arr = np.array(hi)
        for (x0, y0, x1, y1) in self._bounding_boxes_from_mask(diff_mask, cell=12, min_area=60, pad=3):
            arr[y0:y0 + 3, x0:x1 + 1] = [255, 0, 0, 255]
            arr[y1 - 2:y1 + 1, x0:x1 + 1] = [255, 0, 0, 255]
            arr[y0:y1 + 1, x0:x0 + 3] = [255, 0, 0, 255]
            arr[y0:y1 + 1, x1 - 2:x1 + 1] = [255, 0, 0, 255]
        return Image.fromarray(arr)

    @staticmethod
    def _bounding_boxes_from_mask(mask: np.ndarray, cell: int = 12, min_area: int = 60, pad: int = 3) -> List[Tuple[int, int, int, int]]:
        h, w = mask.shape
        ys, xs = np.where(mask)
        if len(xs) == 0:
            return []

        uniq = np.unique(np.stack([ys // cell, xs // cell], axis=1), axis=0)
        cell_set = {(int(cy), int(cx)) for cy, cx in uniq}
        visited = set()
        boxes = []

        for cy, cx in sorted(cell_set):
            if (cy, cx) in visited:
                continue
            queue = deque([(cy, cx)])
            visited.add((cy, cx))
            min_cx = max_cx = cx
            min_cy = max_cy = cy
            while queue:
                py, px = queue.popleft()
                for ny in range(py - 1, py + 2):
                    for nx in range(px - 1, px + 2):
                        if (ny, nx) in cell_set and (ny, nx) not in visited:
                            visited.add((ny, nx))
                            queue.append((ny, nx))
                            min_cx, max_cx = min(min_cx, nx), max(max_cx, nx)
                            min_cy, max_cy = min(min_cy, ny), max(max_cy, ny)
            x0 = max(0, min_cx * cell - pad)
            y0 = max(0, min_cy * cell - pad)
            x1 = min(w, min(w, (max_cx + 1) * cell) + pad)
            y1 = min(h, min(h, (max_cy + 1) * cell) + pad)
            if (x1 - x0) * (y1 - y0) >= min_area:
                boxes.append((x0, y0, x1 - 1, y1 - 1))
        return boxes


@dataclass(slots=True)
class SnapshotOutcome:
    name: str
    passed: bool
    created: bool
    baseline_path: Path
    diff_percent: float = 0.0
    actual_path: Optional[Path] = None
    diff_path: Optional[Path] = None
    highlight_path: Optional[Path] = None
    ssim_score: Optional[float] = None


class SnapshotStore:
    """Named PNG baselines for ``matches-snapshot`` assertions.

    The first comparison under a name stores the capture as the baseline and
    passes. Later comparisons use :class:`ScreenshotComparator`; on mismatch
    the actual capture plus diff and highlight images are written next to the
    baseline as ``<name>_actual.png``, ``<name>_diff.png`` and
    ``<name>_highlight.png``.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        *,
        tolerance_percent: float = 0.0,
        comparator: Optional[ScreenshotComparator] = None,
    ) -> None:
        self.directory = Path(directory)
        self.tolerance_percent = float(tolerance_percent)
        self.comparator = comparator or ScreenshotComparator()

    def baseline_path(self, name: str) -> Path:
        return self.directory / snapshot_filename(name)

    def has_baseline(self, name: str) -> bool:
        return self.baseline_path(name).is_file()

    def save_baseline(self, name: str, image: ImageRef) -> Path:
        path = self.baseline_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        to_image(image).save(path, format="PNG")
        logger.info("Stored snapshot baseline '%s' at %s", name, path)
        return path

    def delete_baseline(self, name: str) -> bool:
        path = self.baseline_path(name)
        if not path.exists():
            return False
        path.unlink()
        return True

    def compare(self, name: str, image: ImageRef) -> SnapshotOutcome:
        baseline_path = self.baseline_path(name)
        actual = to_image(image)
        if not baseline_path.is_file():
            self.save_baseline(name, actual)
            return SnapshotOutcome(name=name, passed=True, created=True, baseline_path=baseline_path)

        baseline = to_image(baseline_path)
        result = self.comparator.compare(baseline, actual, self.tolerance_percent)
        outcome = SnapshotOutcome(
            name=name,
            passed=result.passed,
            created=False,
            baseline_path=baseline_path,
            diff_percent=result.diff_percent,
            ssim_score=result.ssim_score,
        )
        if not result.passed:
            stem = baseline_path.stem
            outcome.actual_path = self._save(actual, baseline_path.with_name(f"{stem}_actual.png"))
            if result.diff_image is not None:
                outcome.diff_path = self._save(result.diff_image, baseline_path.with_name(f"{stem}_diff.png"))
            if result.highlight_image is not None:
                outcome.highlight_path = self._save(
                    result.highlight_image, baseline_path.with_name(f"{stem}_highlight.png")
                )
            logger.warning("Snapshot '%s' differs by %.3f%% from baseline", name, result.diff_percent)
        return outcome

    @staticmethod
    def _save(image: Image.Image, path: Path) -> Optional[Path]:
        try:
            image.save(path, format="PNG")
            return path
        except Exception as exc:
            logger.debug("Could not write snapshot evidence %s: %s", path, exc)
            return None
