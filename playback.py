import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

import cv2
import numpy as np
import pygame

from constants import GATE_CLOSED

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def init_audio() -> bool:
    """Initialize pygame mixer. Return False if no audio device is available."""
    try:
        if not pygame.mixer.get_init():
            pygame.mixer.init(frequency=44100, size=-16, channels=2, buffer=512)
        return True
    except pygame.error as e:
        logger.error("Failed to init audio: %s", e)
        return False


def shutdown_audio() -> None:
    """Tutup mixer pygame jika masih aktif (dipanggil saat program selesai)."""
    if pygame.mixer.get_init():
        pygame.mixer.quit()


class VoiceClip:
    """
    Klip suara dengan semantik seperti elemen media: paused, play, pause, rewind.

    ``play()`` melanjutkan dari posisi terakhir jika channel masih aktif,
    atau mulai dari awal jika klip belum pernah diputar / sudah selesai.
    """

    def __init__(self, sound: Any, volume: float = 1.0):
        self._sound = sound
        self._sound.set_volume(volume)
        self._channel: Optional[Any] = None
        self._paused = True

    @classmethod
    def from_file(cls, path: PathLike, volume: float = 1.0) -> Optional["VoiceClip"]:
        """Load klip dari file. Return None jika file tidak ada atau gagal di-load."""
        path = Path(path)
        if not path.exists():
            logger.warning("Voice clip not found: %s", path)
            return None
        try:
            sound = pygame.mixer.Sound(str(path))
        except pygame.error as e:
            logger.error("Failed to load voice clip %s: %s", path, e)
            return None
        logger.info("Loaded voice clip: %s", path)
        return cls(sound, volume)

    @property
    def paused(self) -> bool:
        # Channel yang sudah selesai memutar dianggap paused (seperti event 'ended')
        if self._channel is None or not self._channel.get_busy():
            return True
        return self._paused

    def play(self) -> None:
        """Putar atau lanjutkan klip. Dapat melempar pygame.error."""
        if self._channel is not None and self._channel.get_busy():
            if self._paused:
                self._channel.unpause()
        else:
            channel = self._sound.play()
            if channel is None:
                # Semua channel mixer sedang dipakai
                raise pygame.error("no free mixer channel for voice clip")
            self._channel = channel
        self._paused = False

    def pause(self) -> None:
        """Pause klip; posisi putar disimpan untuk play() berikutnya."""
        if self._channel is not None:
            self._channel.pause()
        self._paused = True

    def rewind(self) -> None:
        """Hentikan klip dan kembali ke posisi 0."""
        if self._channel is not None:
            self._channel.stop()
        self._channel = None
        self._paused = True

    def prime(self) -> None:
        """Putar lalu langsung pause dan rewind sekali, agar mixer siap dipakai."""
        try:
            self.play()
        except pygame.error as e:
            logger.info("Voice clip priming blocked (continuing): %s", e)
        self.pause()
        self.rewind()


class PlaybackController:
    """Mengatur play/pause klip suara berdasarkan state gate."""

    def __init__(self, voice: Optional[VoiceClip]):
        self.voice = voice
        self.audio_ready = False

    def allow(self) -> None:
        """Izinkan playback (dipanggil setelah klip di-prime)."""
        self.audio_ready = self.voice is not None

    def apply(self, state: str) -> Optional[str]:
        """
        Terapkan state gate ke klip suara.

        Args:
            state: GATE_CLOSED, GATE_OPEN, atau GATE_NO_FACE

        Returns:
            "play" atau "pause" jika ada aksi efektif, None jika tidak ada
        """
        if not self.audio_ready or self.voice is None:
            return None

        if state == GATE_CLOSED:
            if not self.voice.paused:
                return None
            try:
                self.voice.play()
            except pygame.error as e:
                # Best effort, dicoba lagi di frame berikutnya
                logger.debug("Voice play rejected: %s", e)
                return None
            return "play"

        if not self.voice.paused:
            self.voice.pause()
            return "pause"
        return None

    def stop(self) -> None:
        """Hentikan klip, kembali ke awal, dan cabut izin playback."""
        if self.voice is not None:
            self.voice.rewind()
        self.audio_ready = False


class BackgroundVideo:
    """Video latar yang diputar berulang (loop) dengan soundtrack opsional."""

    def __init__(
        self,
        capture: Optional[Any],
        soundtrack_path: Optional[PathLike] = None,
        volume: float = 1.0,
        music: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._capture = capture
        self._soundtrack_path = Path(soundtrack_path) if soundtrack_path else None
        self._volume = volume
        self._music = music if music is not None else pygame.mixer.music
        self._clock = clock
        self._last_frame: Optional[np.ndarray] = None
        self._next_frame_at = 0.0
        self.playing = False

        # Interval antar frame sesuai fps video, agar kecepatan video tidak ikut loop UI
        fps = capture.get(cv2.CAP_PROP_FPS) if capture is not None else 0.0
        self._frame_interval = 1.0 / fps if fps and fps > 0 else 0.0

    @classmethod
    def open(
        cls,
        video_path: PathLike,
        soundtrack_path: Optional[PathLike] = None,
        capture_factory: Callable[[str], Any] = cv2.VideoCapture,
    ) -> "BackgroundVideo":
        """Buka file video latar. File yang tidak ada hanya menghasilkan peringatan."""
        video_path = Path(video_path)
        capture = None
        if video_path.exists():
            capture = capture_factory(str(video_path))
            if not capture.isOpened():
                logger.warning("Cannot open background video: %s", video_path)
                capture.release()
                capture = None
        else:
            logger.warning("Background video not found: %s", video_path)
        return cls(capture, soundtrack_path)

    def start(self) -> None:
        """Mulai soundtrack (loop, volume maksimum) dan tandai video sebagai berjalan."""
        self.playing = True
        if self._soundtrack_path is None:
            return
        if not self._soundtrack_path.exists():
            logger.warning("Background soundtrack not found: %s", self._soundtrack_path)
            return
        try:
            self._music.load(str(self._soundtrack_path))
            self._music.set_volume(self._volume)
            self._music.play(-1)  # -1 untuk infinite loop
            logger.info("Background soundtrack started (loop)")
        except pygame.error as e:
            logger.error("Background soundtrack error: %s", e)

    def read_frame(self) -> Optional[np.ndarray]:
        """Ambil frame berikutnya; kembali ke frame 0 ketika video habis."""
        if self._capture is None or not self.playing:
            return self._last_frame
        now = self._clock()
        if self._last_frame is not None and now < self._next_frame_at:
            return self._last_frame
        self._next_frame_at = now + self._frame_interval
        ok, frame = self._capture.read()
        if not ok:
            self._capture.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ok, frame = self._capture.read()
            if not ok:
                return self._last_frame
        self._last_frame = frame
        return frame

    def stop(self) -> None:
        """Hentikan soundtrack. Frame video terakhir tetap tersedia."""
        if self.playing and self._soundtrack_path is not None:
            try:
                self._music.stop()
            except pygame.error as e:
                logger.debug("Background soundtrack stop error: %s", e)
        self.playing = False

    def release(self) -> None:
        """Hentikan soundtrack dan lepaskan file video."""
        self.stop()
        if self._capture is not None:
            self._capture.release()
            self._capture = None
