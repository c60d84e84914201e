import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from constants import (
    BACKGROUND_SOUNDTRACK_PATH,
    BACKGROUND_VIDEO_PATH,
    CAMERA_FPS,
    CAMERA_HEIGHT,
    CAMERA_WIDTH,
    FALLBACK_CAMERA_INDEX,
    FIRST_FRAME_GIVE_UP_S,
    PREFERRED_CAMERA_INDEX,
    VOICE_CLIP_PATH,
)


@dataclass
class SessionConfig:
    """Konfigurasi satu sesi (kamera, aset media, tampilan, logging)."""
    camera_index: int = PREFERRED_CAMERA_INDEX
    fallback_camera_index: int = FALLBACK_CAMERA_INDEX
    width: int = CAMERA_WIDTH
    height: int = CAMERA_HEIGHT
    fps: int = CAMERA_FPS
    voice_path: Path = VOICE_CLIP_PATH
    video_path: Path = BACKGROUND_VIDEO_PATH
    soundtrack_path: Optional[Path] = BACKGROUND_SOUNDTRACK_PATH
    mirror: bool = True
    show_landmarks: bool = False
    first_frame_timeout: float = FIRST_FRAME_GIVE_UP_S
    log_level: str = "INFO"
    log_file: Optional[str] = None


def build_arg_parser() -> argparse.ArgumentParser:
    """
    Buat parser argumen command line.

    Semua default diambil dari constants.py, jadi menjalankan program tanpa
    argumen sama dengan SessionConfig() default.

    Returns:
        ArgumentParser untuk opsi kamera, media, tampilan, dan logging
    """
    p = argparse.ArgumentParser(description="EyeVoice Trigger - eye-openness driven voice playback")
    # Kamera
    p.add_argument("--camera", type=int, default=PREFERRED_CAMERA_INDEX, help="Preferred camera index")
    p.add_argument("--fallback-camera", type=int, default=FALLBACK_CAMERA_INDEX,
                   help="Camera index for the unconstrained fallback request")
    p.add_argument("--width", type=int, default=CAMERA_WIDTH)
    p.add_argument("--height", type=int, default=CAMERA_HEIGHT)
    p.add_argument("--fps", type=int, default=CAMERA_FPS)
    p.add_argument("--first-frame-timeout", type=float, default=FIRST_FRAME_GIVE_UP_S,
                   help="Seconds to wait for camera data before giving up")
    # Media
    p.add_argument("--voice", type=Path, default=VOICE_CLIP_PATH, help="Voice clip (wav/ogg)")
    p.add_argument("--video", type=Path, default=BACKGROUND_VIDEO_PATH, help="Looping background video")
    p.add_argument("--soundtrack", type=Path, default=BACKGROUND_SOUNDTRACK_PATH,
                   help="Background video soundtrack")
    p.add_argument("--no-soundtrack", action="store_true")
    # Tampilan
    p.add_argument("--no-mirror", action="store_true", help="Do not mirror the camera preview")
    p.add_argument("--show-landmarks", action="store_true", help="Draw EAR points on the preview")
    # Logging
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    p.add_argument("--log-file", default=None)
    return p


def parse_config(argv: Optional[Sequence[str]] = None) -> SessionConfig:
    """
    Parse argumen command line menjadi SessionConfig.

    Args:
        argv: Daftar argumen (None = sys.argv)

    Returns:
        SessionConfig untuk satu sesi
    """
    args = build_arg_parser().parse_args(argv)
    return SessionConfig(
        camera_index=args.camera,
        fallback_camera_index=args.fallback_camera,
        width=args.width,
        height=args.height,
        fps=args.fps,
        voice_path=args.voice,
        video_path=args.video,
        # --no-soundtrack mematikan audio video latar sepenuhnya
        soundtrack_path=None if args.no_soundtrack else args.soundtrack,
        mirror=not args.no_mirror,
        show_landmarks=args.show_landmarks,
        first_frame_timeout=args.first_frame_timeout,
        log_level=args.log_level,
        log_file=args.log_file,
    )
