import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

CaptureFactory = Callable[[int], Any]


class CameraError(RuntimeError):
    """Kamera tidak tersedia, ditolak, atau tidak mengirim data."""


@dataclass(frozen=True)
class CameraRequest:
    """Permintaan kamera. Resolusi / fps None berarti tanpa batasan."""
    index: int
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[int] = None


def open_camera(request: CameraRequest, capture_factory: CaptureFactory = cv2.VideoCapture) -> Any:
    """
    Buka kamera sesuai permintaan.

    Args:
        request: Index kamera dan resolusi / fps yang diinginkan
        capture_factory: Pembuat objek capture (default cv2.VideoCapture)

    Returns:
        Objek VideoCapture yang sudah terbuka

    Raises:
        CameraError: jika kamera tidak bisa dibuka
    """
    try:
        cap = capture_factory(request.index)
    except cv2.error as e:
        raise CameraError(f"Cannot open camera index {request.index}: {e}") from e

    if not cap.isOpened():
        cap.release()
        raise CameraError(f"Cannot open camera index {request.index}")

    # Set properti kamera (nilai 'ideal', driver boleh mengabaikan)
    try:
        if request.width is not None:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, request.width)
        if request.height is not None:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, request.height)
        if request.fps is not None:
            cap.set(cv2.CAP_PROP_FPS, request.fps)
    except cv2.error as e:
        cap.release()
        raise CameraError(f"Camera index {request.index} rejected constraints: {e}") from e
    return cap


def acquire_camera(
    preferred: CameraRequest,
    fallback: CameraRequest,
    capture_factory: CaptureFactory = cv2.VideoCapture,
) -> Tuple[Any, bool]:
    """
    Buka kamera utama; jika gagal, coba sekali lagi tanpa batasan.

    Fungsi ini blocking (driver kamera bisa lambat merespons), jadi sesi
    menjalankannya di worker thread dan hanya memeriksa hasilnya dari loop UI.

    Args:
        preferred: Permintaan utama (dengan resolusi dan fps)
        fallback: Permintaan cadangan tanpa batasan
        capture_factory: Pembuat objek capture

    Returns:
        Tuple (capture, used_fallback)

    Raises:
        CameraError: jika kedua permintaan gagal
    """
    try:
        return open_camera(preferred, capture_factory), False
    except CameraError as e:
        logger.warning("Failed to get camera (trying fallback): %s", e)

    cap = open_camera(fallback, capture_factory)
    return cap, True


def poll_first_frame(capture: Any, timer: "StageTimer", give_up_s: float) -> Optional[np.ndarray]:
    """
    Coba baca satu frame kamera tanpa menunggu lebih lama.

    Dipanggil sekali per iterasi loop UI selama sesi menunggu frame pertama,
    jadi jendela tetap bisa digambar ulang dan menerima input keyboard.

    Args:
        capture: Objek VideoCapture yang sudah terbuka
        timer: Timer tahap tunggu frame pertama
        give_up_s: Batas keras (detik) sebelum sesi dianggap gagal

    Returns:
        Frame BGR, atau None jika kamera belum mengirim data

    Raises:
        CameraError: jika belum ada frame setelah ``give_up_s`` detik
    """
    ok, frame = capture.read()
    if ok and frame is not None:
        return frame
    if timer.elapsed() >= give_up_s:
        raise CameraError("Camera delivered no data. Check that it is not in use by another app.")
    return None


def release_camera(capture: Optional[Any]) -> None:
    """
    Lepaskan device kamera jika masih terbuka.

    Aman dipanggil berkali-kali dan dengan ``None``.

    Args:
        capture: Objek VideoCapture, atau None jika kamera belum didapat
    """
    if capture is not None and capture.isOpened():
        capture.release()


class StageTimer:
    """
    Pengukur waktu untuk satu tahap akuisisi kamera.

    Tidak memakai thread timer: deadline dicek sekali per iterasi loop UI,
    sehingga perubahan status selalu terjadi di thread UI dan tidak bisa
    menimpa status tahap berikutnya.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started_at = clock()
        self._fired = set()

    def elapsed(self) -> float:
        """Detik yang sudah lewat sejak tahap ini dimulai."""
        return self._clock() - self._started_at

    def passed_once(self, seconds: float) -> bool:
        """
        Cek apakah deadline ``seconds`` sudah terlewati.

        Returns:
            True tepat satu kali (pada pengecekan pertama setelah deadline), False selain itu
        """
        if seconds in self._fired or self.elapsed() < seconds:
            return False
        self._fired.add(seconds)
        return True
