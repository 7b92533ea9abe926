"""InsightFace detection, descriptor and age/gender inference."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from signage.types import FEMALE, MALE, FaceDetection, as_descriptor

LOGGER = logging.getLogger("signage.detectors.face")

_SEX_TO_GENDER = {"M": MALE, "F": FEMALE}


def _default_providers() -> Tuple[str, ...]:
    """Choose default ONNX providers for InsightFace."""
    system = platform.system()
    machine = platform.machine().lower()
    if system == "Darwin" and machine in {"arm64", "aarch64"}:
        return ("CoreMLExecutionProvider", "CPUExecutionProvider")
    return ("CPUExecutionProvider",)


def face_to_detection(face: Any) -> FaceDetection:
    """Convert an ``insightface.app.common.Face`` into a FaceDetection."""
    bbox = tuple(float(v) for v in face.bbox)
    embedding = getattr(face, "normed_embedding", None)
    if embedding is None:
        embedding = face.embedding
    sex = getattr(face, "sex", None)
    return FaceDetection(
        bbox=bbox,  # type: ignore[arg-type]
        descriptor=as_descriptor(embedding),
        age=float(face.age),
        gender=_SEX_TO_GENDER.get(sex, "unknown"),
        gender_probability=None,
        score=float(face.det_score),
    )


class InsightFaceAnalyzer:
    """Wrapper around InsightFace FaceAnalysis returning descriptors plus age/gender."""

    def __init__(
        self,
        model_name: str = "buffalo_l",
        providers: Optional[Sequence[str]] = None,
        det_size: Tuple[int, int] = (640, 640),
        det_thresh: float = 0.5,
    ) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("MKL_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.app import FaceAnalysis
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for InsightFaceAnalyzer. "
                "Install it via `pip install audience-signage[inference]`."
            ) from exc

        self.det_size = tuple(det_size)
        self.det_thresh = det_thresh
        provider_list: Tuple[str, ...]
        if providers is None:
            provider_list = _default_providers()
        else:
            provider_list = tuple(providers)
        self.providers = provider_list
        self.app = FaceAnalysis(
            name=model_name,
            allowed_modules=["detection", "recognition", "genderage"],
            providers=list(provider_list),
        )
        self.app.prepare(ctx_id=0, det_size=self.det_size, det_thresh=det_thresh)
        LOGGER.info(
            "Loaded InsightFace %s det_size=%s det_thresh=%.2f providers=%s",
            model_name,
            self.det_size,
            det_thresh,
            provider_list,
        )

    def detect_sync(self, frame: np.ndarray) -> List[FaceDetection]:
        """Run detection, embedding and age/gender on a BGR frame."""
        faces = self.app.get(frame)
        return [face_to_detection(face) for face in faces if float(face.det_score) >= self.det_thresh]

    async def detect(self, frame: np.ndarray) -> List[FaceDetection]:
        """Run inference in a worker thread; resumes on the calling event loop."""
        return await asyncio.to_thread(self.detect_sync, frame)
