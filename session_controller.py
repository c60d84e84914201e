import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

import cv2
import numpy as np

from camera import (
    CameraError,
    CameraRequest,
    StageTimer,
    acquire_camera,
    poll_first_frame,
    release_camera,
)
from config import SessionConfig
from constants import (
    COLOR_GREEN,
    COLOR_RED,
    COLOR_WHITE,
    COLOR_YELLOW,
    FIRST_FRAME_WATCHDOG_S,
    GATE_CLOSED,
    GATE_NO_FACE,
    PERMISSION_WATCHDOG_S,
    PREVIEW_HEIGHT,
    PREVIEW_WIDTH,
    STAGE_ACQUIRING,
    STAGE_ACTIVE,
    STAGE_FAILED,
    STAGE_IDLE,
    STAGE_LOADING_MODEL,
    STAGE_WAITING_FRAME,
    STATUS_ACTIVE,
    STATUS_ERROR,
    STATUS_GRANTED,
    STATUS_GRANTED_FALLBACK,
    STATUS_IDLE,
    STATUS_LOADING_MODEL,
    STATUS_NO_CAMERA_DATA,
    STATUS_NO_FACE,
    STATUS_REQUESTING,
    STATUS_SILENT,
    STATUS_SOUNDING,
    STATUS_WAITING_PERMISSION,
    WINDOW_HEIGHT,
    WINDOW_NAME,
    WINDOW_WIDTH,
)
from eye_gate import GateReading, ThresholdGate
from face_processing import Landmarks, calculate_average_ear, draw_eye_points, landmarks_from_results
from landmark_source import LandmarkSource, default_face_mesh
from logging_config import DebugLogHandler
from playback import BackgroundVideo, PlaybackController, VoiceClip, init_audio

logger = logging.getLogger(__name__)

KEY_ESC = 27
KEY_ENTER = 13
KEY_SPACE = 32


def show_alert(message: str) -> None:
    """
    Tampilkan dialog error yang blocking.

    Args:
        message: Pesan error yang ditampilkan ke pengguna
    """
    from tkinter import TclError, Tk, messagebox

    try:
        # Root Tk disembunyikan, hanya dialognya yang tampil
        root = Tk()
        root.withdraw()
        messagebox.showerror(WINDOW_NAME, message)
        root.destroy()
    except TclError as e:
        logger.error("Cannot show alert dialog: %s", e)


def _release_late_capture(future: Future) -> None:
    """Lepaskan kamera yang baru terbuka setelah sesi sudah ditutup."""
    if future.cancelled() or future.exception() is not None:
        return
    capture, _ = future.result()
    release_camera(capture)


@dataclass
class SessionState:
    """State milik satu sesi. Direset eksplisit saat teardown."""
    gate: ThresholdGate = field(default_factory=ThresholdGate)
    stage: str = STAGE_IDLE
    last_reading: Optional[GateReading] = None
    last_landmarks: Optional[Landmarks] = None

    @property
    def started(self) -> bool:
        return self.stage != STAGE_IDLE

    @property
    def failed(self) -> bool:
        return self.stage == STAGE_FAILED

    def reset(self) -> None:
        """Kembalikan semua state sesi ke kondisi awal (sebelum START)."""
        self.gate.reset()
        self.stage = STAGE_IDLE
        self.last_reading = None
        self.last_landmarks = None


class StatusBoard:
    """Teks status singkat + warna (BGR) untuk ditampilkan di layar."""

    def __init__(self, text: str = STATUS_IDLE, color: Tuple[int, int, int] = COLOR_WHITE):
        self.text = text
        self.color = color

    def set(self, text: str, color: Tuple[int, int, int] = COLOR_WHITE) -> None:
        """
        Ganti teks dan warna status.

        Args:
            text: Teks status (lihat konstanta STATUS_*)
            color: Warna BGR teks
        """
        self.text = text
        self.color = color


class PollingDriver:
    """
    Loop polling per frame tampilan.

    Setiap ``tick()`` mengambil frame kamera terbaru dan mengirimnya ke
    LandmarkSource secara sinkron; tick berikutnya baru dijadwalkan setelah
    request selesai. Error per frame dibuang agar sesi tidak berhenti.
    """

    def __init__(self, read_frame: Callable[[], Optional[np.ndarray]], source: LandmarkSource):
        self._read_frame = read_frame
        self._source = source
        self._running = False
        self._tick_pending = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Nyalakan loop dan jadwalkan tick pertama."""
        self._running = True
        self._tick_pending = True

    def stop(self) -> None:
        """Hentikan loop dan batalkan tick yang sudah dijadwalkan. Aman dipanggil kapan saja."""
        self._running = False
        self._tick_pending = False

    def tick(self) -> bool:
        """
        Jalankan satu tick polling.

        Returns:
            True jika tick dijalankan, False jika loop tidak aktif
        """
        if not (self._running and self._tick_pending):
            return False
        self._tick_pending = False

        try:
            frame = self._read_frame()
            if frame is not None:
                self._source.send(frame)
        except Exception as e:
            logger.debug("Landmark frame discarded: %s", e)

        # stop() selama callback membatalkan tick berikutnya
        if self._running:
            self._tick_pending = True
        return True


class VoiceTriggerSession:
    """
    Sesi utama: kamera, Face Mesh, gate EAR, dan playback suara + video latar.

    Start-up berjalan bertahap (lihat konstanta STAGE_*): setiap iterasi loop
    UI memanggil ``step()`` yang memajukan paling banyak satu tahap, lalu
    jendela digambar ulang. Dengan begitu setiap status akuisisi sempat
    tampil dan jendela tetap responsif selama menunggu kamera.
    """

    def __init__(
        self,
        config: SessionConfig,
        voice: Optional[VoiceClip] = None,
        background: Optional[BackgroundVideo] = None,
        capture_factory: Callable[[int], Any] = cv2.VideoCapture,
        face_mesh_factory: Callable[[], Any] = default_face_mesh,
        alert: Callable[[str], None] = show_alert,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the session; tidak ada resource kamera yang dibuka sebelum start()."""
        self.config = config
        self.status = StatusBoard()
        self.state = SessionState()
        self.controller = PlaybackController(voice)
        self.background = background if background is not None else BackgroundVideo(None)
        self.source = LandmarkSource(self.on_results, face_mesh_factory)
        self.driver = PollingDriver(self._read_camera_frame, self.source)
        self.capture: Optional[Any] = None

        self._capture_factory = capture_factory
        self._alert = alert
        # Worker tunggal hanya untuk membuka device kamera (blocking)
        self._executor = executor if executor is not None else ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="camera")
        self._clock = clock
        self._acquisition: Optional[Future] = None
        self._stage_timer: Optional[StageTimer] = None
        self._camera_frame: Optional[np.ndarray] = None
        self._start_button_rect: Optional[Tuple[int, int, int, int]] = None  # (x, y, w, h)
        self._start_requested = False
        self._quit_requested = False
        self._closed = False

        # Baris debug di layar menampilkan pesan log terakhir
        self.debug_log = DebugLogHandler()
        self.debug_log.last_message = "System ready. Waiting for user..."
        logging.getLogger().addHandler(self.debug_log)

    @classmethod
    def from_config(cls, config: SessionConfig) -> "VoiceTriggerSession":
        """
        Buat sesi lengkap dengan mixer pygame dan aset media dari konfigurasi.

        Args:
            config: Konfigurasi sesi hasil parse_config()

        Returns:
            VoiceTriggerSession yang siap dijalankan dengan run()
        """
        voice = None
        soundtrack = None
        if init_audio():
            voice = VoiceClip.from_file(config.voice_path)
            soundtrack = config.soundtrack_path
        background = BackgroundVideo.open(config.video_path, soundtrack)
        return cls(config, voice=voice, background=background)

    # === START-UP ===

    def request_start(self) -> None:
        """Minta sesi dimulai pada iterasi loop berikutnya (setelah status tampil)."""
        if self.state.started or self._start_requested:
            return
        self.status.set(STATUS_REQUESTING, COLOR_YELLOW)
        self._start_requested = True

    def start(self) -> None:
        """
        Mulai sesi: unlock audio, video latar, lalu minta kamera.

        Tidak blocking. Pembukaan kamera berjalan di worker, dan tahap
        berikutnya dimajukan oleh ``step()`` dari loop UI.
        """
        if self.state.started:
            return

        logger.info("1. Starting...")
        self.status.set(STATUS_REQUESTING, COLOR_YELLOW)

        # Prime klip suara sekali agar play berikutnya langsung jalan
        voice = self.controller.voice
        if voice is not None:
            voice.prime()
            self.controller.allow()
            logger.info("2. Audio unlocked.")
        else:
            logger.warning("Voice clip unavailable, playback disabled.")

        self.background.start()

        logger.info("3. Requesting camera...")
        preferred = CameraRequest(
            self.config.camera_index,
            width=self.config.width,
            height=self.config.height,
            fps=self.config.fps,
        )
        fallback = CameraRequest(self.config.fallback_camera_index)
        self._begin_stage(STAGE_ACQUIRING)
        self._acquisition = self._executor.submit(acquire_camera, preferred, fallback, self._capture_factory)

    def step(self) -> None:
        """Satu iterasi loop: majukan start-up satu tahap, atau jalankan satu tick polling."""
        stage = self.state.stage
        if stage == STAGE_ACTIVE:
            self.driver.tick()
        elif stage == STAGE_ACQUIRING:
            self._poll_acquisition()
        elif stage == STAGE_WAITING_FRAME:
            self._poll_first_frame()
        elif stage == STAGE_LOADING_MODEL:
            self._load_model()

    def _begin_stage(self, stage: str) -> None:
        self.state.stage = stage
        self._stage_timer = StageTimer(self._clock)

    def _poll_acquisition(self) -> None:
        """Cek hasil pembukaan kamera; tampilkan status jika izin lambat."""
        future = self._acquisition
        if not future.done():
            if self._stage_timer.passed_once(PERMISSION_WATCHDOG_S):
                self._on_permission_slow()
            return

        self._acquisition = None
        try:
            capture, used_fallback = future.result()
        except CameraError as e:
            self._fail(e)
            return

        self.capture = capture
        if used_fallback:
            self.status.set(STATUS_GRANTED_FALLBACK, COLOR_GREEN)
            logger.info("Fallback stream obtained (camera %d).", self.config.fallback_camera_index)
        else:
            self.status.set(STATUS_GRANTED, COLOR_GREEN)
            logger.info("Stream obtained (camera %d).", self.config.camera_index)
        self._begin_stage(STAGE_WAITING_FRAME)

    def _poll_first_frame(self) -> None:
        """Coba ambil frame pertama; gagal terminal setelah batas waktu."""
        try:
            frame = poll_first_frame(self.capture, self._stage_timer, self.config.first_frame_timeout)
        except CameraError as e:
            self._fail(e)
            return

        if frame is None:
            if self._stage_timer.passed_once(FIRST_FRAME_WATCHDOG_S):
                self._on_no_camera_data()
            return

        self._camera_frame = self._prepare_camera_frame(frame)
        logger.info("4. Camera ready. Loading model...")
        logger.info("5. Loading face model (wait 3-5 s)...")
        # Status tampil dulu; model di-load pada iterasi berikutnya
        self.status.set(STATUS_LOADING_MODEL, COLOR_YELLOW)
        self._begin_stage(STAGE_LOADING_MODEL)

    def _load_model(self) -> None:
        try:
            self.source.initialize()
        except Exception as e:
            logger.error("MODEL ERROR: %s", e)
            self.status.set(f"{STATUS_ERROR}: model", COLOR_RED)
            self.state.stage = STAGE_FAILED
            return

        logger.info("6. Model loaded. Starting detection...")
        self.status.set(STATUS_ACTIVE, COLOR_WHITE)
        self.state.stage = STAGE_ACTIVE
        self.driver.start()

    def _fail(self, error: Exception) -> None:
        """Error kamera bersifat terminal untuk sesi ini."""
        message = f"{error}\nCheck camera permissions and that no other app is using the camera."
        logger.error("FATAL ERROR: %s", message)
        self.status.set(f"{STATUS_ERROR}: camera", COLOR_RED)
        self.state.stage = STAGE_FAILED
        self.driver.stop()
        release_camera(self.capture)
        self.capture = None
        self._alert(f"Error: {message}")

    def _on_permission_slow(self) -> None:
        logger.info("Camera permission is taking a while... check the system prompt.")
        self.status.set(STATUS_WAITING_PERMISSION, COLOR_YELLOW)

    def _on_no_camera_data(self) -> None:
        logger.info("Camera delivered no data. Check that it is not in use by another app.")
        self.status.set(STATUS_NO_CAMERA_DATA, COLOR_RED)

    # === POLLING ===

    def _prepare_camera_frame(self, frame: np.ndarray) -> np.ndarray:
        # Flip frame agar seperti cermin (kamera depan)
        return cv2.flip(frame, 1) if self.config.mirror else frame

    def _read_camera_frame(self) -> Optional[np.ndarray]:
        """
        Baca frame kamera terbaru untuk PollingDriver.

        Returns:
            Frame (sudah di-mirror jika perlu), atau None jika belum ada data
        """
        if self.capture is None:
            return None
        ok, frame = self.capture.read()
        if not ok or frame is None:
            return None
        self._camera_frame = self._prepare_camera_frame(frame)
        return self._camera_frame

    def on_results(self, results: Any) -> None:
        """Callback LandmarkSource: hitung EAR, update gate, dan atur playback."""
        landmarks = landmarks_from_results(results)
        self.state.last_landmarks = landmarks

        if landmarks is None:
            reading = self.state.gate.no_face()
        else:
            ear = calculate_average_ear(landmarks)
            if ear is None:
                # Geometri degenerate: frame ini tidak punya pembacaan
                return
            reading = self.state.gate.evaluate(ear)

        self.state.last_reading = reading
        self.controller.apply(reading.state)
        self._update_status(reading)

    def _update_status(self, reading: GateReading) -> None:
        if reading.state == GATE_NO_FACE:
            self.status.set(STATUS_NO_FACE, COLOR_RED)
        elif reading.state == GATE_CLOSED:
            self.status.set(STATUS_SOUNDING, COLOR_GREEN)
        else:
            self.status.set(STATUS_SILENT, COLOR_WHITE)

    def reset_calibration(self) -> None:
        """Reset puncak EAR ke nilai awal (tombol 'r')."""
        self.state.gate.reset()
        logger.info("Peak calibration reset (peak=%.2f).", self.state.gate.tracker.peak)

    def teardown(self) -> None:
        """Bersihkan semua resource. Aman dipanggil lebih dari sekali."""
        if self._closed:
            return
        self._closed = True

        # Hentikan polling dan model
        self.driver.stop()
        self.source.close()

        # Kamera yang masih dibuka di worker dilepas begitu selesai
        if self._acquisition is not None and not self._acquisition.cancel():
            self._acquisition.add_done_callback(_release_late_capture)
        self._acquisition = None
        self._executor.shutdown(wait=False)

        # Audio, video latar, dan kamera
        self.controller.stop()
        self.background.release()
        release_camera(self.capture)
        self.capture = None
        self.state.reset()
        logging.getLogger().removeHandler(self.debug_log)

    # === UI ===

    def run(self) -> None:
        """
        Loop utama jendela.

        Setiap iterasi: mulai sesi jika diminta, satu step (tahap start-up atau
        tick polling), render, lalu baca keyboard. Tidak ada langkah yang
        menunggu kamera, jadi status selalu tergambar.
        """
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(WINDOW_NAME, WINDOW_WIDTH, WINDOW_HEIGHT)
        cv2.setMouseCallback(WINDOW_NAME, self._on_mouse_click)

        try:
            while not self._quit_requested:
                if self._start_requested:
                    self._start_requested = False
                    self.start()

                self.step()
                self.handle_key(self._show(self.render()))

                if cv2.getWindowProperty(WINDOW_NAME, cv2.WND_PROP_VISIBLE) < 1:
                    break
        except KeyboardInterrupt:
            logger.info("Session interrupted by user")
        finally:
            self.teardown()
            cv2.destroyAllWindows()

    @staticmethod
    def _show(frame: np.ndarray) -> int:
        cv2.imshow(WINDOW_NAME, frame)
        return cv2.waitKey(1) & 0xFF

    def handle_key(self, key: int) -> None:
        """
        Proses input keyboard.

        Args:
            key: Kode tombol dari cv2.waitKey (sudah di-mask 0xFF)
        """
        if key in (ord("q"), KEY_ESC):  # Tekan 'q' / Esc untuk keluar
            self._quit_requested = True
        elif key in (KEY_SPACE, KEY_ENTER):
            self.request_start()
        elif key == ord("r"):  # Tekan 'r' untuk reset kalibrasi
            self.reset_calibration()

    def _on_mouse_click(self, event, x, y, flags, param):
        """Handle mouse click untuk tombol START."""
        if event == cv2.EVENT_LBUTTONDOWN and self._start_button_rect is not None:
            btn_x, btn_y, btn_w, btn_h = self._start_button_rect
            if btn_x <= x <= btn_x + btn_w and btn_y <= y <= btn_y + btn_h:
                self.request_start()

    def render(self) -> np.ndarray:
        """Susun frame tampilan: video latar, preview kamera, status, dan baris debug."""
        canvas = np.zeros((WINDOW_HEIGHT, WINDOW_WIDTH, 3), dtype=np.uint8)

        bg_frame = self.background.read_frame()
        if bg_frame is not None:
            canvas[:] = cv2.resize(bg_frame, (WINDOW_WIDTH, WINDOW_HEIGHT))

        if self._camera_frame is not None:
            self._draw_preview(canvas, self._camera_frame)

        if not self.state.started:
            self._draw_start_screen(canvas)
        else:
            self._start_button_rect = None

        self._draw_status_pill(canvas)
        self._draw_debug_line(canvas)
        return canvas

    def _draw_preview(self, canvas: np.ndarray, frame: np.ndarray) -> None:
        preview = cv2.resize(frame, (PREVIEW_WIDTH, PREVIEW_HEIGHT))
        if self.config.show_landmarks and self.state.last_landmarks:
            draw_eye_points(preview, self.state.last_landmarks, PREVIEW_WIDTH, PREVIEW_HEIGHT)
        x = WINDOW_WIDTH - PREVIEW_WIDTH - 20
        y = WINDOW_HEIGHT - PREVIEW_HEIGHT - 20
        canvas[y:y + PREVIEW_HEIGHT, x:x + PREVIEW_WIDTH] = preview
        cv2.rectangle(canvas, (x - 1, y - 1), (x + PREVIEW_WIDTH, y + PREVIEW_HEIGHT), COLOR_WHITE, 1)

    def _draw_start_screen(self, canvas: np.ndarray) -> None:
        # Overlay gelap semi transparan
        overlay = np.zeros_like(canvas)
        cv2.addWeighted(overlay, 0.6, canvas, 0.4, 0, dst=canvas)

        cx = WINDOW_WIDTH // 2
        cy = WINDOW_HEIGHT // 2
        self._put_centered(canvas, "EYEVOICE TRIGGER", cy - 90, 1.4, COLOR_WHITE, 3)
        self._put_centered(canvas, "Close your eyes to hear the voice", cy - 45, 0.7, (200, 200, 200), 1)

        btn_w, btn_h = 220, 70
        btn_x, btn_y = cx - btn_w // 2, cy
        cv2.rectangle(canvas, (btn_x, btn_y), (btn_x + btn_w, btn_y + btn_h), (40, 180, 40), -1)
        cv2.rectangle(canvas, (btn_x, btn_y), (btn_x + btn_w, btn_y + btn_h), COLOR_WHITE, 2)
        self._put_centered(canvas, "START", btn_y + 48, 1.2, COLOR_WHITE, 2)
        self._put_centered(canvas, "click START or press SPACE  |  q: quit", btn_y + btn_h + 40,
                           0.55, (200, 200, 200), 1)
        self._start_button_rect = (btn_x, btn_y, btn_w, btn_h)

    def _draw_status_pill(self, canvas: np.ndarray) -> None:
        text = self.status.text
        (tw, th), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_DUPLEX, 0.8, 2)
        x = (WINDOW_WIDTH - tw) // 2
        y = 60
        cv2.rectangle(canvas, (x - 20, y - th - 15), (x + tw + 20, y + 15), (30, 30, 30), -1)
        cv2.putText(canvas, text, (x, y), cv2.FONT_HERSHEY_DUPLEX, 0.8, self.status.color, 2)

        reading = self.state.last_reading
        if reading is not None and reading.threshold is not None:
            ear_text = f"EAR={reading.ear:.3f}" if reading.ear is not None else "EAR=-"
            cv2.putText(
                canvas,
                f"{ear_text} peak={reading.peak:.3f} th={reading.threshold:.3f}",
                (x - 20, y + 40),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.5,
                (255, 255, 0),
                1,
            )

    def _draw_debug_line(self, canvas: np.ndarray) -> None:
        message = self.debug_log.last_message.splitlines()[0] if self.debug_log.last_message else ""
        cv2.putText(canvas, message, (10, WINDOW_HEIGHT - 15), cv2.FONT_HERSHEY_SIMPLEX, 0.5, COLOR_YELLOW, 1)

    @staticmethod
    def _put_centered(canvas: np.ndarray, text: str, y: int, scale: float, color, thickness: int) -> None:
        (tw, _), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_DUPLEX, scale, thickness)
        cv2.putText(canvas, text, ((WINDOW_WIDTH - tw) // 2, y), cv2.FONT_HERSHEY_DUPLEX, scale, color, thickness)
