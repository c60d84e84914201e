from concurrent.futures import Future
from types import SimpleNamespace
from typing import List, Optional

import cv2
import numpy as np
import pygame
import pytest

from config import SessionConfig
from constants import FIRST_FRAME_GIVE_UP_S, LEFT_EYE_POINTS, RIGHT_EYE_POINTS, STAGE_ACTIVE, STAGE_FAILED
from playback import BackgroundVideo, VoiceClip
from session_controller import VoiceTriggerSession

NUM_LANDMARKS = 478
EYE_WIDTH = 0.1


def make_landmarks(left_ear: float, right_ear: Optional[float] = None) -> List[List[float]]:
    """Landmark sintetis dengan EAR tertentu untuk masing-masing mata."""
    if right_ear is None:
        right_ear = left_ear
    landmarks = [[0.5, 0.5] for _ in range(NUM_LANDMARKS)]
    for (left, top, right, bottom), x0, ear in (
        (LEFT_EYE_POINTS, 0.30, left_ear),
        (RIGHT_EYE_POINTS, 0.60, right_ear),
    ):
        half = ear * EYE_WIDTH / 2.0
        landmarks[left] = [x0, 0.40]
        landmarks[right] = [x0 + EYE_WIDTH, 0.40]
        landmarks[top] = [x0 + EYE_WIDTH / 2.0, 0.40 - half]
        landmarks[bottom] = [x0 + EYE_WIDTH / 2.0, 0.40 + half]
    return landmarks


def make_results(*faces: List[List[float]]) -> SimpleNamespace:
    """Hasil palsu berbentuk seperti output MediaPipe Face Mesh."""
    if not faces:
        return SimpleNamespace(multi_face_landmarks=None)
    return SimpleNamespace(
        multi_face_landmarks=[
            SimpleNamespace(landmark=[SimpleNamespace(x=x, y=y) for x, y in face])
            for face in faces
        ]
    )


class FakeChannel:
    def __init__(self):
        self.busy = True
        self.paused = False

    def get_busy(self):
        return self.busy

    def pause(self):
        self.paused = True

    def unpause(self):
        self.paused = False

    def stop(self):
        self.busy = False


class FakeSound:
    def __init__(self, fail_times: int = 0, no_channel: bool = False):
        self.fail_times = fail_times
        self.no_channel = no_channel
        self.volume = None
        self.channels: List[FakeChannel] = []

    def set_volume(self, volume):
        self.volume = volume

    def play(self):
        if self.fail_times > 0:
            self.fail_times -= 1
            raise pygame.error("playback blocked")
        if self.no_channel:
            return None
        channel = FakeChannel()
        self.channels.append(channel)
        return channel


class FakeMusic:
    def __init__(self):
        self.calls = []

    def load(self, path):
        self.calls.append(("load", path))

    def set_volume(self, volume):
        self.calls.append(("set_volume", volume))

    def play(self, loops=0):
        self.calls.append(("play", loops))

    def stop(self):
        self.calls.append(("stop",))


class FakeCapture:
    """Pengganti cv2.VideoCapture."""

    def __init__(self, opened: bool = True, empty_reads: int = 0, frames: Optional[int] = None, fps: float = 0.0):
        self.opened = opened
        self.empty_reads = empty_reads
        self.frames = frames  # None = tak terbatas
        self.fps = fps
        self.position = 0
        self.props = {}
        self.released = False
        self.read_calls = 0

    def isOpened(self):
        return self.opened and not self.released

    def read(self):
        self.read_calls += 1
        if not self.isOpened():
            return False, None
        if self.empty_reads > 0:
            self.empty_reads -= 1
            return False, None
        if self.frames is not None and self.position >= self.frames:
            return False, None
        frame = np.full((48, 64, 3), self.position % 255, dtype=np.uint8)
        self.position += 1
        return True, frame

    def set(self, prop, value):
        self.props[prop] = value
        if prop == cv2.CAP_PROP_POS_FRAMES:
            self.position = int(value)
        return True

    def get(self, prop):
        if prop == cv2.CAP_PROP_FPS:
            return self.fps
        return self.props.get(prop, 0.0)

    def release(self):
        self.released = True


class SequencedFactory:
    """capture_factory yang mengembalikan capture sesuai urutan pemanggilan."""

    def __init__(self, *captures: FakeCapture):
        self.captures = list(captures)
        self.requested = []

    def __call__(self, index):
        self.requested.append(index)
        return self.captures.pop(0)


class FakeFaceMesh:
    def __init__(self, results=None):
        self.results = results if results is not None else make_results()
        self.error: Optional[Exception] = None
        self.processed = []
        self.closed = False

    def process(self, rgb_frame):
        self.processed.append(rgb_frame)
        if self.error is not None:
            raise self.error
        return self.results

    def close(self):
        self.closed = True


class FakeClock:
    """Jam monotonic palsu yang hanya maju jika di-advance."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InlineExecutor:
    """
    Executor sinkron untuk test.

    Pekerjaan langsung dijalankan saat submit, kecuali ``hold=True``: future
    dibiarkan pending sampai ``finish()`` dipanggil (mensimulasikan kamera
    yang lambat dibuka).
    """

    def __init__(self, hold: bool = False):
        self.hold = hold
        self.pending = []
        self.shut_down = False

    def submit(self, fn, *args, **kwargs):
        future = Future()
        if self.hold:
            self.pending.append((future, fn, args, kwargs))
        else:
            self._run(future, fn, args, kwargs)
        return future

    def finish(self):
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            self._run(future, fn, args, kwargs)

    def shutdown(self, wait=True, cancel_futures=False):
        self.shut_down = True

    @staticmethod
    def _run(future, fn, args, kwargs):
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)


class SessionHarness:
    """Kumpulan fake yang dipakai untuk membangun VoiceTriggerSession di test."""

    def __init__(self, *captures: FakeCapture, first_frame_timeout: float = FIRST_FRAME_GIVE_UP_S,
                 hold_camera: bool = False):
        self.sound = FakeSound()
        self.voice = VoiceClip(self.sound)
        self.face_mesh = FakeFaceMesh()
        self.mesh_factory_calls = 0
        self.alerts = []
        self.clock = FakeClock()
        self.executor = InlineExecutor(hold=hold_camera)
        self.factory = SequencedFactory(*(captures or (FakeCapture(),)))
        self.session = VoiceTriggerSession(
            SessionConfig(first_frame_timeout=first_frame_timeout),
            voice=self.voice,
            background=BackgroundVideo(None, music=FakeMusic()),
            capture_factory=self.factory,
            face_mesh_factory=self._make_face_mesh,
            alert=self.alerts.append,
            executor=self.executor,
            clock=self.clock,
        )

    def _make_face_mesh(self):
        self.mesh_factory_calls += 1
        return self.face_mesh

    def start(self, max_steps: int = 10) -> bool:
        """Jalankan start() lalu step() sampai start-up selesai. Return True jika polling aktif."""
        self.session.start()
        for _ in range(max_steps):
            if self.session.state.stage in (STAGE_ACTIVE, STAGE_FAILED):
                break
            self.session.step()
        return self.session.driver.running

    def feed(self, results) -> bool:
        self.face_mesh.results = results
        return self.session.driver.tick()


@pytest.fixture
def harness():
    h = SessionHarness()
    yield h
    h.session.teardown()
