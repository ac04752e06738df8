"""
Onset strength via half-wave rectified spectral flux.

flux[0] = 0
flux[i] = sqrt(sum_k max(0, S[i][k] - S[i-1][k]) ** 2), k >= low_bin_cutoff

Only energy increases count, so decays between beats do not register.
"""

import logging

import numpy as np

from tempokey.analyze.spectral import Spectrogram

logger = logging.getLogger(__name__)

DEFAULT_LOW_BIN_CUTOFF = 10


def spectral_flux(spectrogram: Spectrogram, low_bin_cutoff: int = DEFAULT_LOW_BIN_CUTOFF) -> np.ndarray:
    """
    Compute the onset envelope, one value per frame.

    Args:
        spectrogram: Tempo-band spectra from frame_spectra()
        low_bin_cutoff: Bins below this index (DC / rumble) are ignored

    Returns:
        Non-negative float array of len(spectrogram); empty if there are no frames
    """
    n_frames = len(spectrogram)
    envelope = np.zeros(n_frames, dtype=np.float64)
    if n_frames < 2:
        return envelope

    columns = spectrogram.bins >= low_bin_cutoff
    if not np.any(columns):
        logger.debug(f"No bins at or above cutoff {low_bin_cutoff}; flat onset envelope")
        return envelope

    mags = spectrogram.magnitudes[:, columns]
    rise = np.maximum(np.diff(mags, axis=0), 0.0)
    envelope[1:] = np.sqrt(np.sum(rise * rise, axis=1))
    return envelope
