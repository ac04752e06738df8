"""
Tempo estimation: onset peak picking (primary) with autocorrelation fallback.

Primary path:
- Adaptive threshold mean + 1.2 * std on the onset envelope
- Local maxima over +/-3 frames, at least 0.25 s apart
- Inter-onset intervals in [0.3 s, 2.5 s] -> median (or histogram mode)
- 60 / interval, octave-corrected into a musical range

Fallback (fewer than 8 peaks or 4 usable intervals):
- Sparse autocorrelation of the waveform over beat-period lags

All thresholds are fixed so results are reproducible.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_TEMPO_BPM = 120
MIN_TEMPO_BPM = 60
MAX_TEMPO_BPM = 200

THRESHOLD_STD_FACTOR = 1.2
PEAK_NEIGHBORHOOD = 3
MIN_PEAK_SPACING_SECONDS = 0.25
MIN_PEAKS = 8
MIN_INTERVALS = 4
MAX_PEAKS_FOR_INTERVALS = 50
MIN_INTERVAL_SECONDS = 0.3
MAX_INTERVAL_SECONDS = 2.5
HISTOGRAM_BINS = 100

# Octave-folding window
FOLD_LOW_BPM = 70.0
FOLD_HIGH_BPM = 180.0

# Autocorrelation lag search, in seconds of beat period
AUTOCORR_MIN_LAG_SECONDS = 0.3
AUTOCORR_MAX_LAG_SECONDS = 1.5


@dataclass(frozen=True)
class Peak:
    """Local maximum of the onset envelope."""

    frame_index: int
    value: float


def _round_bpm(bpm: float) -> int:
    """Round half up and clamp to [MIN_TEMPO_BPM, MAX_TEMPO_BPM]."""
    return int(max(MIN_TEMPO_BPM, min(MAX_TEMPO_BPM, math.floor(bpm + 0.5))))


def highpass(samples: np.ndarray, alpha: float) -> np.ndarray:
    """
    First-order high-pass filter: y[i] = alpha * (y[i-1] + x[i] - x[i-1]).

    The recursion is evaluated block-wise: each block is a lower-triangular
    matrix product, and only the carry between blocks is sequential.
    """
    x = np.asarray(samples, dtype=np.float64)
    y = np.empty_like(x)
    if len(x) == 0:
        return y
    y[0] = x[0]
    if len(x) == 1:
        return y

    block = 256
    u = alpha * np.diff(x)
    n = len(u)
    padded = np.zeros(-(-n // block) * block, dtype=np.float64)
    padded[:n] = u
    blocks = padded.reshape(-1, block)

    t = np.arange(block)
    lags = t[:, None] - t[None, :]
    kernel = np.where(lags >= 0, alpha ** np.maximum(lags, 0), 0.0)
    carry_gain = alpha ** (t + 1)

    partial = blocks @ kernel.T
    out = np.empty_like(partial)
    carry = y[0]
    for b in range(partial.shape[0]):
        out[b] = partial[b] + carry_gain * carry
        carry = out[b, -1]

    y[1:] = out.reshape(-1)[:n]
    return y


def fold_octave(bpm: float) -> float:
    """
    Single-pass octave correction for the onset path.

    Applied in order, each check seeing the previous result:
    < 70 doubles, > 180 halves, < 70 doubles again.
    """
    if bpm < FOLD_LOW_BPM:
        bpm *= 2
    if bpm > FOLD_HIGH_BPM:
        bpm /= 2
    if bpm < FOLD_LOW_BPM:
        bpm *= 2
    return bpm


def _fold_octave_until_in_range(bpm: float) -> float:
    while 0 < bpm < FOLD_LOW_BPM:
        bpm *= 2
    while bpm > FOLD_HIGH_BPM:
        bpm /= 2
    return bpm


def onset_threshold(envelope: np.ndarray) -> float:
    """mean + 1.2 * std (population) of the envelope."""
    return float(np.mean(envelope) + THRESHOLD_STD_FACTOR * np.std(envelope))


def pick_peaks(envelope: np.ndarray, sample_rate: int, hop_size: int) -> List[Peak]:
    """
    Find onset peaks.

    A frame i (3 <= i <= n - 4) is a peak when it exceeds the adaptive
    threshold and is strictly greater than its 3 neighbours on each side.
    Peaks closer than 0.25 s to the previously accepted peak are dropped.

    Args:
        envelope: Onset envelope from spectral_flux()
        sample_rate: Sample rate in Hz
        hop_size: Frame advance used to build the envelope

    Returns:
        Accepted peaks in frame order
    """
    envelope = np.asarray(envelope, dtype=np.float64)
    n = len(envelope)
    if n < 2 * PEAK_NEIGHBORHOOD + 1:
        return []

    threshold = onset_threshold(envelope)
    min_distance = int(round(MIN_PEAK_SPACING_SECONDS * sample_rate / hop_size))

    logger.debug(
        f"Onset stats: mean={np.mean(envelope):.6f}, std={np.std(envelope):.6f}, "
        f"max={np.max(envelope):.6f}, threshold={threshold:.6f}"
    )

    peaks: List[Peak] = []
    for i in range(PEAK_NEIGHBORHOOD, n - PEAK_NEIGHBORHOOD):
        value = envelope[i]
        if value <= threshold:
            continue
        neighbours = np.concatenate(
            (envelope[i - PEAK_NEIGHBORHOOD:i], envelope[i + 1:i + 1 + PEAK_NEIGHBORHOOD])
        )
        if not np.all(value > neighbours):
            continue
        if peaks and i - peaks[-1].frame_index < min_distance:
            continue
        peaks.append(Peak(frame_index=i, value=float(value)))

    return peaks


def peak_intervals(peaks: List[Peak], sample_rate: int, hop_size: int) -> np.ndarray:
    """
    Seconds between consecutive peaks, kept only inside [0.3 s, 2.5 s].

    Only the first MAX_PEAKS_FOR_INTERVALS peaks contribute.
    """
    frames = np.array([p.frame_index for p in peaks[:MAX_PEAKS_FOR_INTERVALS]], dtype=np.float64)
    if len(frames) < 2:
        return np.zeros(0, dtype=np.float64)
    intervals = np.diff(frames) * hop_size / sample_rate
    keep = (intervals >= MIN_INTERVAL_SECONDS) & (intervals <= MAX_INTERVAL_SECONDS)
    return intervals[keep]


def median_interval(intervals: np.ndarray) -> float:
    """Upper median of the sorted intervals."""
    ordered = np.sort(intervals)
    return float(ordered[len(ordered) // 2])


def histogram_interval(intervals: np.ndarray, bins: int = HISTOGRAM_BINS) -> float:
    """Centre of the fullest histogram bin between min and max interval."""
    ordered = np.sort(intervals)
    lo, hi = float(ordered[0]), float(ordered[-1])
    if hi <= lo:
        return lo
    bin_size = (hi - lo) / bins
    idx = np.minimum(((ordered - lo) / bin_size).astype(int), bins - 1)
    counts = np.bincount(idx, minlength=bins)
    return lo + (int(np.argmax(counts)) + 0.5) * bin_size


INTERVAL_SELECTORS = {
    "median": median_interval,
    "histogram": histogram_interval,
}


def tempo_from_intervals(intervals: np.ndarray, selector: str = "median") -> int:
    """Dominant interval -> BPM, octave-corrected, clamped, rounded."""
    interval = INTERVAL_SELECTORS[selector](intervals)
    raw_bpm = 60.0 / interval
    bpm = fold_octave(raw_bpm)
    logger.debug(f"Dominant interval {interval:.4f}s ({selector}) -> raw {raw_bpm:.2f}, folded {bpm:.2f} BPM")
    return _round_bpm(bpm)


def estimate_tempo_from_envelope(
    envelope: np.ndarray,
    sample_rate: int,
    hop_size: int,
    selector: str = "median",
) -> Optional[int]:
    """
    Onset-based tempo estimate.

    Returns:
        BPM in [60, 200], or None when there are too few peaks or intervals
        (the caller should then fall back to autocorrelation_tempo)
    """
    peaks = pick_peaks(envelope, sample_rate, hop_size)
    logger.debug(f"Found {len(peaks)} onset peaks")
    if len(peaks) < MIN_PEAKS:
        logger.debug(f"Only {len(peaks)} peaks (< {MIN_PEAKS}); onset path insufficient")
        return None

    intervals = peak_intervals(peaks, sample_rate, hop_size)
    if len(intervals) < MIN_INTERVALS:
        logger.debug(f"Only {len(intervals)} usable intervals (< {MIN_INTERVALS}); onset path insufficient")
        return None

    return tempo_from_intervals(intervals, selector)


def autocorrelation_tempo(
    samples: np.ndarray,
    sample_rate: int,
    max_seconds: float = 20.0,
    lag_step: int = 8,
    sample_step: int = 16,
) -> int:
    """
    Fallback tempo from sparse waveform autocorrelation.

    Searches lags in [0.3 s, 1.5 s) every `lag_step` samples; each lag's
    correlation is the mean of x[i] * x[i + lag] over every `sample_step`-th
    index of the first `max_seconds` of audio.

    Always returns a BPM in [60, 200]. When no lag correlates positively
    (silence, too little audio) the default tempo is returned.
    """
    x = np.asarray(samples, dtype=np.float64)
    n = min(len(x), int(sample_rate * max_seconds))
    min_lag = int(math.floor(sample_rate * AUTOCORR_MIN_LAG_SECONDS))
    max_lag = int(math.floor(sample_rate * AUTOCORR_MAX_LAG_SECONDS))

    best_corr = 0.0
    best_lag = None
    for lag in range(max(1, min_lag), min(max_lag, n), lag_step):
        head = x[0:n - lag:sample_step]
        tail = x[lag:n:sample_step]
        if len(head) == 0:
            break
        corr = float(np.dot(head, tail)) / len(head)
        if corr > best_corr:
            best_corr = corr
            best_lag = lag

    if best_lag is None:
        logger.debug("Autocorrelation found no positive periodicity; using default tempo")
        return DEFAULT_TEMPO_BPM

    raw_bpm = 60.0 * sample_rate / best_lag
    bpm = _fold_octave_until_in_range(raw_bpm)
    logger.debug(f"Autocorrelation best lag {best_lag} (corr={best_corr:.6f}) -> {raw_bpm:.2f}, folded {bpm:.2f} BPM")
    return _round_bpm(bpm)
