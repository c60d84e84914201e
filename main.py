# === IMPORT LIBRARY ===
import logging
from typing import Optional, Sequence

from config import parse_config
from logging_config import setup_logging
from playback import shutdown_audio
from session_controller import VoiceTriggerSession

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    Fungsi utama untuk menjalankan EyeVoice Trigger.

    Fungsi ini bertanggung jawab untuk:
    1. Membaca konfigurasi dari command line
    2. Menyiapkan logging
    3. Menyiapkan sesi (mixer audio, klip suara, video latar)
    4. Menjalankan loop jendela sampai pengguna keluar
    """
    config = parse_config(argv)
    setup_logging(config.log_level, config.log_file)

    # Kamera belum dibuka di sini; akuisisi terjadi setelah pengguna menekan START
    session = VoiceTriggerSession.from_config(config)
    try:
        session.run()
    finally:
        shutdown_audio()
        logger.info("Session closed")


# === ENTRY POINT PROGRAM ===
if __name__ == "__main__":
    main()
