import logging
from typing import Any, Callable, Optional

import cv2
import mediapipe as mp
import numpy as np

from constants import (
    FACE_MESH_MAX_FACES,
    FACE_MESH_MIN_DETECTION_CONFIDENCE,
    FACE_MESH_MIN_TRACKING_CONFIDENCE,
    FACE_MESH_REFINE_LANDMARKS,
)

logger = logging.getLogger(__name__)


def default_face_mesh() -> Any:
    """
    Buat model MediaPipe Face Mesh untuk satu wajah dengan iris refinement.

    Returns:
        Objek FaceMesh yang siap dipakai dengan process()
    """
    return mp.solutions.face_mesh.FaceMesh(
        static_image_mode=False,
        max_num_faces=FACE_MESH_MAX_FACES,
        refine_landmarks=FACE_MESH_REFINE_LANDMARKS,
        min_detection_confidence=FACE_MESH_MIN_DETECTION_CONFIDENCE,
        min_tracking_confidence=FACE_MESH_MIN_TRACKING_CONFIDENCE,
    )


class LandmarkSource:
    """
    Pembungkus MediaPipe Face Mesh dengan kontrak request/response.

    Hasil setiap ``send()`` diteruskan ke callback ``on_results``. Hanya satu
    request yang boleh berjalan pada satu waktu.
    """

    def __init__(
        self,
        on_results: Callable[[Any], None],
        face_mesh_factory: Callable[[], Any] = default_face_mesh,
    ):
        self._on_results = on_results
        self._face_mesh_factory = face_mesh_factory
        self._face_mesh: Optional[Any] = None
        self._in_flight = False

    @property
    def ready(self) -> bool:
        """True jika model sudah di-load."""
        return self._face_mesh is not None

    def initialize(self) -> None:
        """Load model Face Mesh (bisa memakan beberapa detik)."""
        if self._face_mesh is None:
            self._face_mesh = self._face_mesh_factory()
            logger.debug("Face mesh initialized")

    def send(self, frame: np.ndarray) -> None:
        """
        Proses satu frame BGR dan panggil callback dengan hasilnya.

        Raises:
            RuntimeError: jika model belum di-load atau masih ada request lain
        """
        if self._face_mesh is None:
            raise RuntimeError("Face mesh is not initialized")
        if self._in_flight:
            raise RuntimeError("A landmark request is already in flight")

        self._in_flight = True
        try:
            # Convert frame ke RGB untuk MediaPipe
            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            results = self._face_mesh.process(rgb_frame)
            self._on_results(results)
        finally:
            self._in_flight = False

    def close(self) -> None:
        """Lepaskan model Face Mesh. Aman dipanggil berkali-kali."""
        if self._face_mesh is not None:
            self._face_mesh.close()
            self._face_mesh = None
