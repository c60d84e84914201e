import math
from typing import Any, List, Optional, Sequence

import cv2
import numpy as np

from constants import LEFT_EYE_POINTS, RIGHT_EYE_POINTS


Landmarks = List[List[float]]


# ---------- KONVERSI HASIL FACE MESH ----------

def landmarks_from_results(results: Any) -> Optional[Landmarks]:
    """
    Ambil landmark wajah pertama dari hasil MediaPipe Face Mesh.

    Face Mesh dikonfigurasi untuk 1 wajah, jadi hanya wajah pertama yang dipakai.

    Args:
        results: Hasil ``face_mesh.process()``

    Returns:
        List [x, y] yang normalized (0-1), atau None jika tidak ada wajah
    """
    if results is None or not results.multi_face_landmarks:
        return None
    face_landmarks = results.multi_face_landmarks[0]
    return [[lm.x, lm.y] for lm in face_landmarks.landmark]


def _px_point(landmarks: Landmarks, index: int, W: int, H: int) -> tuple:
    """Konversi satu landmark normalized menjadi koordinat piksel."""
    x, y = landmarks[index][0], landmarks[index][1]
    return int(x * W), int(y * H)


# ---------- EAR (Eye Aspect Ratio) ----------

def calculate_eye_aspect_ratio(landmarks: Landmarks, eye_points: Sequence[int]) -> Optional[float]:
    """
    Hitung Eye Aspect Ratio (EAR) 4 titik untuk satu mata.

    Formula EAR = ||top - bottom|| / ||left - right||

    Args:
        landmarks: Landmark wajah (normalized 0-1)
        eye_points: Index (sudut kiri, kelopak atas, sudut kanan, kelopak bawah)

    Returns:
        Nilai EAR, atau None jika geometri degenerate (jarak horizontal nol)
    """
    left, top, right, bottom = eye_points
    p = {i: np.array(landmarks[i][:2], dtype=np.float64) for i in (left, top, right, bottom)}

    vertical = float(np.linalg.norm(p[top] - p[bottom]))
    horizontal = float(np.linalg.norm(p[left] - p[right]))

    if horizontal == 0.0:
        return None

    ear = vertical / horizontal
    if not math.isfinite(ear):
        return None
    return ear


def calculate_average_ear(landmarks: Landmarks) -> Optional[float]:
    """
    Hitung rata-rata EAR dari kedua mata.

    Returns:
        Rata-rata EAR, atau None jika salah satu mata tidak punya pembacaan
    """
    left_ear = calculate_eye_aspect_ratio(landmarks, LEFT_EYE_POINTS)
    right_ear = calculate_eye_aspect_ratio(landmarks, RIGHT_EYE_POINTS)
    if left_ear is None or right_ear is None:
        return None
    return (left_ear + right_ear) / 2.0


# ---------- DEBUG OVERLAY ----------

def draw_eye_points(frame: np.ndarray, landmarks: Landmarks, frame_width: int, frame_height: int) -> None:
    """Gambar titik-titik EAR kedua mata pada frame (in place)."""
    for eye_points in (LEFT_EYE_POINTS, RIGHT_EYE_POINTS):
        left, top, right, bottom = eye_points
        # Garis horizontal (sudut ke sudut) dan vertikal (kelopak ke kelopak)
        cv2.line(frame, _px_point(landmarks, left, frame_width, frame_height),
                 _px_point(landmarks, right, frame_width, frame_height), (255, 255, 0), 1)
        cv2.line(frame, _px_point(landmarks, top, frame_width, frame_height),
                 _px_point(landmarks, bottom, frame_width, frame_height), (0, 255, 255), 1)
        for idx in eye_points:
            cv2.circle(frame, _px_point(landmarks, idx, frame_width, frame_height), 2, (0, 255, 0), -1)
