"""Overlay rendering of cached face boxes for the kiosk preview window."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np

from signage.demographics import round_age
from signage.types import CachedBox

LOGGER = logging.getLogger("signage.viz.overlay")

BOX_COLOR = (128, 222, 74)  # BGR for #4ade80
TEXT_COLOR = (255, 255, 255)
STATUS_BG = (30, 30, 30)


def box_label(box: CachedBox) -> str:
    label = box.label
    if box.score is not None and box.score > 0:
        label = f"{label} ({box.score:.2f})"
    return label


def demographic_label(box: CachedBox) -> str:
    age = round_age(box.age)
    if box.category is not None:
        return f"{age}y {box.gender} | {box.category.category}"
    return f"{age} years, {box.gender}"


def mirror_bbox(bbox: Tuple[float, float, float, float], width: int) -> Tuple[float, float, float, float]:
    """Reflect a box horizontally so it lines up with a mirrored preview."""
    x1, y1, x2, y2 = bbox
    return width - x2, y1, width - x1, y2


def draw_cached_boxes(
    frame: np.ndarray,
    boxes: Iterable[CachedBox],
    mirror: bool = False,
    status: Optional[str] = None,
) -> np.ndarray:
    """Return a copy of ``frame`` with boxes, two-line labels and the status line."""
    canvas = cv2.flip(frame, 1) if mirror else frame.copy()
    width = canvas.shape[1]
    for box in boxes:
        bbox = mirror_bbox(box.bbox, width) if mirror else box.bbox
        x1, y1, x2, y2 = map(int, bbox)
        cv2.rectangle(canvas, (x1, y1), (x2, y2), BOX_COLOR, 3)
        lines = [box_label(box), demographic_label(box)]
        (text_w, _), _ = cv2.getTextSize(max(lines, key=len), cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
        top = max(0, y1 - 40)
        cv2.rectangle(canvas, (x1, top), (x1 + text_w + 16, max(top + 1, y1 - 2)), BOX_COLOR, -1)
        cv2.putText(canvas, lines[0], (x1 + 8, top + 16), cv2.FONT_HERSHEY_SIMPLEX, 0.5, TEXT_COLOR, 2)
        cv2.putText(canvas, lines[1], (x1 + 8, top + 33), cv2.FONT_HERSHEY_SIMPLEX, 0.45, TEXT_COLOR, 1)
    if status:
        cv2.rectangle(canvas, (0, 0), (width, 24), STATUS_BG, -1)
        cv2.putText(canvas, status, (8, 17), cv2.FONT_HERSHEY_SIMPLEX, 0.5, TEXT_COLOR, 1)
    return canvas


class KioskDisplay:
    """Renderer callable for the scheduler that shows frames in an OpenCV window."""

    def __init__(self, window_name: str = "signage", mirror: bool = True) -> None:
        self.window_name = window_name
        self.mirror = mirror
        self.status: Optional[str] = None
        self.quit_requested = False

    def set_status(self, text: str) -> None:
        self.status = text

    def __call__(self, frame: np.ndarray, boxes: Iterable[CachedBox]) -> None:
        canvas = draw_cached_boxes(frame, boxes, mirror=self.mirror, status=self.status)
        cv2.imshow(self.window_name, canvas)
        self.poll_keys()

    def poll_keys(self) -> None:
        """Service window events; 'q' or Esc requests a quit."""
        key = cv2.waitKey(1) & 0xFF
        if key in (ord("q"), 27):
            LOGGER.info("Quit requested from preview window")
            self.quit_requested = True

    def close(self) -> None:
        cv2.destroyWindow(self.window_name)
