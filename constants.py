from pathlib import Path

# Indeks landmark MediaPipe Face Mesh untuk EAR 4 titik per mata.
# Urutan: (sudut kiri, kelopak atas, sudut kanan, kelopak bawah)
LEFT_EYE_POINTS = (33, 159, 133, 145)
RIGHT_EYE_POINTS = (362, 386, 263, 374)

# Pelacak puncak EAR adaptif
PEAK_SEED = 0.3     # nilai awal sebelum ada pembacaan
PEAK_DECAY = 0.99   # peluruhan per frame jika tidak ada puncak baru
PEAK_FLOOR = 0.2    # batas bawah puncak (dan otomatis ambang)

# Ambang = puncak * rasio ini
THRESHOLD_RATIO = 0.6

# Status gate (state machine 3 keadaan)
GATE_NO_FACE = "no_face"
GATE_OPEN = "open"
GATE_CLOSED = "closed"

# Konfigurasi Face Mesh
FACE_MESH_MAX_FACES = 1
FACE_MESH_REFINE_LANDMARKS = True
FACE_MESH_MIN_DETECTION_CONFIDENCE = 0.5
FACE_MESH_MIN_TRACKING_CONFIDENCE = 0.5

# Kamera: permintaan utama (dengan resolusi) lalu fallback tanpa batasan
PREFERRED_CAMERA_INDEX = 0
FALLBACK_CAMERA_INDEX = 0
CAMERA_WIDTH = 640
CAMERA_HEIGHT = 480
CAMERA_FPS = 30

# Deadline saat akuisisi kamera (detik), dicek dari loop UI. Hanya mengubah teks status.
PERMISSION_WATCHDOG_S = 5.0
FIRST_FRAME_WATCHDOG_S = 8.0
# Batas keras menunggu frame pertama sebelum sesi dianggap gagal
FIRST_FRAME_GIVE_UP_S = 20.0

# Tahap start-up sesi. Setiap iterasi loop UI memajukan paling banyak satu tahap.
STAGE_IDLE = "idle"
STAGE_ACQUIRING = "acquiring"          # menunggu device kamera terbuka
STAGE_WAITING_FRAME = "waiting_frame"  # kamera terbuka, menunggu frame pertama
STAGE_LOADING_MODEL = "loading_model"
STAGE_ACTIVE = "active"
STAGE_FAILED = "failed"

# Tampilan
WINDOW_NAME = "EyeVoice Trigger"
WINDOW_WIDTH = 1280
WINDOW_HEIGHT = 720
PREVIEW_WIDTH = 240
PREVIEW_HEIGHT = 180

# Warna status (BGR)
COLOR_WHITE = (255, 255, 255)
COLOR_YELLOW = (0, 255, 255)
COLOR_GREEN = (0, 255, 0)
COLOR_RED = (0, 0, 255)

# Teks status
STATUS_IDLE = "STANDBY"
STATUS_REQUESTING = "Requesting camera permission..."
STATUS_WAITING_PERMISSION = "Waiting for camera permission..."
STATUS_GRANTED = "Permission granted. Preparing video..."
STATUS_GRANTED_FALLBACK = "Permission granted (fallback). Preparing video..."
STATUS_NO_CAMERA_DATA = "No camera data."
STATUS_LOADING_MODEL = "Loading face model..."
STATUS_ACTIVE = "ACTIVE"
STATUS_NO_FACE = "NO FACE"
STATUS_SOUNDING = "SOUNDING"
STATUS_SILENT = "SILENT"
STATUS_ERROR = "ERROR"

# Lokasi aset default
ASSETS_DIR = Path(__file__).parent / "Assets"
VOICE_CLIP_PATH = ASSETS_DIR / "voice.wav"
BACKGROUND_VIDEO_PATH = ASSETS_DIR / "background.mp4"
BACKGROUND_SOUNDTRACK_PATH = ASSETS_DIR / "background.mp3"
