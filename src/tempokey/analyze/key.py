"""
Key detection: chromagram + Krumhansl-Schmuckler template matching.

Chroma:
- Hann-tapered frames, magnitude spectrum restricted to 80-2000 Hz
- Each pitch class collects the bins nearest to its frequency in octaves
  2-6 (linear fall-off over neighbouring bins, low octaves weighted up)
- Summed over all frames, normalized so the strongest class is 1.0

Classifier:
- Dot product of the chroma against the 24 L2-normalized K-S templates
- Best score wins; ties keep the first candidate (roots ascending,
  major before minor), so silence maps to C major
"""

import logging
import math
from typing import Tuple

import numpy as np

from tempokey.analyze.spectral import frame_spectra
from tempokey.analyze.strategy import ChromaStrategy
from tempokey.models import Key, MODES, NOTE_NAMES

logger = logging.getLogger(__name__)

A4_HZ = 440.0

# Krumhansl-Schmuckler profiles, starting from the tonic
_MAJOR_WEIGHTS = (6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88)
_MINOR_WEIGHTS = (6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17)


def _unit(weights: Tuple[float, ...]) -> np.ndarray:
    profile = np.array(weights, dtype=np.float64)
    profile /= np.linalg.norm(profile)
    profile.setflags(write=False)
    return profile


MAJOR_PROFILE = _unit(_MAJOR_WEIGHTS)
MINOR_PROFILE = _unit(_MINOR_WEIGHTS)
PROFILES = {"major": MAJOR_PROFILE, "minor": MINOR_PROFILE}


def pitch_frequency(note: int, octave: int) -> float:
    """Equal-tempered frequency of pitch class `note` (0 = C) in `octave` (A4 = 440 Hz)."""
    return A4_HZ * 2.0 ** ((note - 9 + (octave - 4) * 12) / 12.0)


def chroma_mapping(num_bins: int, fft_size: int, sample_rate: int, strategy: ChromaStrategy) -> np.ndarray:
    """
    12 x num_bins matrix mapping a magnitude spectrum onto pitch classes.

    Row `note` holds, for every octave, the fall-off weights around the bin
    nearest to that pitch, scaled by the octave weight.
    """
    mapping = np.zeros((12, num_bins), dtype=np.float64)
    for note in range(12):
        for octave, octave_weight in zip(strategy.octaves, strategy.octave_weights):
            center = int(math.floor(pitch_frequency(note, octave) * fft_size / sample_rate + 0.5))
            if not 0 < center < num_bins:
                continue
            lo = max(1, center - strategy.neighbor_bins)
            hi = min(num_bins - 1, center + strategy.neighbor_bins)
            for b in range(lo, hi + 1):
                weight = 1.0 - abs(b - center) * strategy.neighbor_falloff
                if weight > 0:
                    mapping[note, b] += weight * octave_weight
    return mapping


def normalize_chroma(chroma: np.ndarray) -> np.ndarray:
    """Scale so the largest bin is 1.0; all-zero input stays all-zero."""
    chroma = np.asarray(chroma, dtype=np.float64)
    peak = float(np.max(chroma)) if chroma.size else 0.0
    if peak <= 0:
        return np.zeros_like(chroma)
    return chroma / peak


def extract_chroma(samples: np.ndarray, sample_rate: int, strategy: ChromaStrategy = ChromaStrategy()) -> np.ndarray:
    """
    Build the normalized 12-bin chromagram (index 0 = C ... 11 = B).

    Args:
        samples: Mono samples
        sample_rate: Sample rate in Hz
        strategy: FFT size, hop, analysis span and mapping weights

    Returns:
        np.ndarray of shape (12,), max element 1.0 or all zeros
    """
    usable = int(min(len(samples), sample_rate * strategy.max_analysis_seconds))
    spectrogram = frame_spectra(
        samples[:usable],
        sample_rate,
        strategy.fft_size,
        strategy.hop_size,
        strategy.band_hz,
    )

    if len(spectrogram) == 0:
        logger.debug("No chroma frames (input shorter than one FFT window)")
        return np.zeros(12, dtype=np.float64)

    mapping = chroma_mapping(spectrogram.num_bins, strategy.fft_size, sample_rate, strategy)
    chroma = normalize_chroma(mapping @ spectrogram.summed_spectrum())

    logger.debug(f"Chromagram over {len(spectrogram)} frames: {np.round(chroma, 3).tolist()}")
    return chroma


def key_scores(chroma: np.ndarray) -> np.ndarray:
    """
    Template scores for all 24 keys.

    Returns:
        np.ndarray of shape (12, 2): [root, 0] major, [root, 1] minor,
        score = sum_i chroma[(i + root) % 12] * template[i]
    """
    chroma = np.asarray(chroma, dtype=np.float64)
    if chroma.shape != (12,):
        raise ValueError(f"chroma must have shape (12,), got {chroma.shape}")

    scores = np.zeros((12, 2), dtype=np.float64)
    for root in range(12):
        rotated = np.roll(chroma, -root)
        for m, mode in enumerate(MODES):
            scores[root, m] = float(np.dot(rotated, PROFILES[mode]))
    return scores


def classify_key(chroma: np.ndarray) -> Key:
    """
    Pick the best of the 24 keys for a chromagram.

    Iterates roots C..B, major before minor; only a strictly greater score
    replaces the current best.
    """
    scores = key_scores(chroma)

    best_root, best_mode, best_score = 0, "major", -math.inf
    for root in range(12):
        for m, mode in enumerate(MODES):
            if scores[root, m] > best_score:
                best_root, best_mode, best_score = root, mode, scores[root, m]

    key = Key(root=NOTE_NAMES[best_root], mode=best_mode)
    logger.debug(f"Key scores best: {key.label} ({best_score:.3f})")
    return key
