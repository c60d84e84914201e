from dataclasses import dataclass
from typing import Optional

from constants import (
    GATE_CLOSED,
    GATE_NO_FACE,
    GATE_OPEN,
    PEAK_DECAY,
    PEAK_FLOOR,
    PEAK_SEED,
    THRESHOLD_RATIO,
)


@dataclass
class PeakTracker:
    """
    Pelacak puncak EAR yang meluruh perlahan.

    Puncak dipakai sebagai kalibrasi per orang / pencahayaan: ambang selalu
    pecahan dari puncak, bukan konstanta tetap.
    """
    seed: float = PEAK_SEED
    decay: float = PEAK_DECAY
    floor: float = PEAK_FLOOR

    def __post_init__(self) -> None:
        self.peak = max(self.seed, self.floor)

    def update(self, reading: float) -> float:
        """Update puncak dengan satu pembacaan EAR valid dan kembalikan puncak baru."""
        if reading > self.peak:
            peak = reading
        else:
            peak = self.peak * self.decay
        self.peak = max(peak, self.floor)
        return self.peak

    def reset(self) -> None:
        """Kembalikan puncak ke nilai awal."""
        self.peak = max(self.seed, self.floor)


def compute_threshold(peak: float, ratio: float = THRESHOLD_RATIO) -> float:
    """
    Hitung ambang mata tertutup dari puncak EAR.

    Args:
        peak: Puncak EAR saat ini (selalu >= floor)
        ratio: Pecahan puncak yang dipakai sebagai ambang

    Returns:
        Ambang EAR; karena ratio < 1, ambang tidak pernah melebihi puncak
    """
    return peak * ratio


@dataclass(frozen=True)
class GateReading:
    """Hasil evaluasi gate untuk satu frame."""
    state: str
    ear: Optional[float] = None
    peak: Optional[float] = None
    threshold: Optional[float] = None


class ThresholdGate:
    """Klasifikasi per frame: no_face, open, atau closed."""

    def __init__(self, tracker: Optional[PeakTracker] = None, ratio: float = THRESHOLD_RATIO):
        self.tracker = tracker if tracker is not None else PeakTracker()
        self.ratio = ratio
        self.state = GATE_NO_FACE

    def no_face(self) -> GateReading:
        """
        Catat frame tanpa wajah.

        Returns:
            GateReading berstatus no_face dengan puncak dan ambang terakhir
        """
        # Tanpa wajah: puncak tidak disentuh
        self.state = GATE_NO_FACE
        return GateReading(state=GATE_NO_FACE, peak=self.tracker.peak,
                           threshold=compute_threshold(self.tracker.peak, self.ratio))

    def evaluate(self, ear: float) -> GateReading:
        """
        Update puncak dengan EAR frame ini lalu bandingkan dengan ambang.

        Args:
            ear: Rata-rata EAR frame saat ini (harus valid, bukan None)

        Returns:
            GateReading dengan state, ear, puncak, dan ambang terkini
        """
        peak = self.tracker.update(ear)
        threshold = compute_threshold(peak, self.ratio)
        self.state = GATE_CLOSED if ear < threshold else GATE_OPEN
        return GateReading(state=self.state, ear=ear, peak=peak, threshold=threshold)

    def reset(self) -> None:
        """Reset kalibrasi puncak dan kembali ke status no_face."""
        self.tracker.reset()
        self.state = GATE_NO_FACE
