"""
Spectral framing: Hann-tapered, overlapping windows -> band-limited magnitude spectra.

Algorithm:
1. Frame start i*hop for i in [0, floor((L - N) / hop))
2. Multiply each window by the Hann taper 0.5 * (1 - cos(2*pi*j / (N - 1)))
3. Magnitude at bin k = sqrt(re^2 + im^2) of the direct DFT sum
   sum_n x[n] * cos/sin(2*pi*k*n / N), only for bins whose centre
   frequency k * sr / N lies inside the requested band

Bins outside the band are never computed and read back as zero. The DFT
is evaluated as a matrix product against a cos/sin basis restricted to
the in-band bins, in blocks of frames and bins.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Upper bound on elements per block (frames x N for windows, N x bins for the basis)
_BLOCK_ELEMENTS = 1 << 21


def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann taper of `size` samples."""
    if size < 2:
        raise ValueError(f"window size must be >= 2, got {size}")
    j = np.arange(size, dtype=np.float64)
    return 0.5 * (1.0 - np.cos(2.0 * np.pi * j / (size - 1)))


def frame_count(usable_length: int, window_size: int, hop_size: int) -> int:
    """Number of analysis frames; zero when the input is shorter than one window."""
    if usable_length < window_size:
        return 0
    return (usable_length - window_size) // hop_size


def band_bins(window_size: int, sample_rate: int, band_hz: Tuple[float, float]) -> np.ndarray:
    """DFT bin indices (k >= 1, below Nyquist) whose centre frequency is inside band_hz."""
    f_lo, f_hi = band_hz
    k = np.arange(1, window_size // 2)
    freqs = k * sample_rate / window_size
    return k[(freqs >= f_lo) & (freqs <= f_hi)]


@dataclass(frozen=True)
class SpectralFrame:
    """One frame's magnitude spectrum (full width, out-of-band bins are zero)."""

    bin_magnitudes: np.ndarray
    center_time: float


@dataclass(frozen=True)
class Spectrogram:
    """
    Band-limited magnitude spectra for a run of frames.

    `magnitudes` holds only the in-band columns (frames x len(bins));
    `bins` maps each column back to its DFT bin index.
    """

    magnitudes: np.ndarray
    bins: np.ndarray
    center_times: np.ndarray
    sample_rate: int
    window_size: int
    hop_size: int

    def __len__(self) -> int:
        return self.magnitudes.shape[0]

    @property
    def num_bins(self) -> int:
        """Width of a full spectrum (bins 0 .. N/2 - 1)."""
        return self.window_size // 2

    def expand(self, compact: np.ndarray) -> np.ndarray:
        """Scatter an in-band vector back into a full-width spectrum."""
        full = np.zeros(self.num_bins, dtype=np.float64)
        full[self.bins] = compact
        return full

    def frame(self, index: int) -> SpectralFrame:
        return SpectralFrame(
            bin_magnitudes=self.expand(self.magnitudes[index]),
            center_time=float(self.center_times[index]),
        )

    def summed_spectrum(self) -> np.ndarray:
        """Full-width spectrum summed over all frames."""
        if len(self) == 0:
            return np.zeros(self.num_bins, dtype=np.float64)
        return self.expand(self.magnitudes.sum(axis=0))


def _dft_basis(window_size: int, bins: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    # n * k reduced mod N before scaling keeps the phase exact for large windows
    n = np.arange(window_size, dtype=np.int64)
    phase = np.outer(n, bins.astype(np.int64)) % window_size
    angle = phase * (2.0 * np.pi / window_size)
    return np.cos(angle), np.sin(angle)


def frame_spectra(
    samples: np.ndarray,
    sample_rate: int,
    window_size: int,
    hop_size: int,
    band_hz: Tuple[float, float],
) -> Spectrogram:
    """
    Slice samples into Hann-tapered frames and compute band-limited magnitudes.

    Both the frames and the cos/sin basis are processed in chunks of at
    most _BLOCK_ELEMENTS values, so peak memory does not grow with the
    window size or the input length.

    Args:
        samples: Mono samples (already trimmed to the usable length)
        sample_rate: Sample rate in Hz
        window_size: Frame length N in samples
        hop_size: Frame advance in samples
        band_hz: (f_lo, f_hi) inclusive frequency band

    Returns:
        Spectrogram with floor((L - N) / hop) frames (possibly zero)
    """
    if hop_size < 1:
        raise ValueError(f"hop size must be >= 1, got {hop_size}")

    samples = np.asarray(samples, dtype=np.float64)
    bins = band_bins(window_size, sample_rate, band_hz)
    n_frames = frame_count(len(samples), window_size, hop_size)

    starts = np.arange(n_frames) * hop_size
    center_times = (starts + window_size / 2.0) / sample_rate
    magnitudes = np.zeros((n_frames, len(bins)), dtype=np.float64)

    if n_frames == 0 or len(bins) == 0:
        logger.debug(
            f"No spectral work: {n_frames} frames, {len(bins)} in-band bins "
            f"(length={len(samples)}, N={window_size})"
        )
        return Spectrogram(magnitudes, bins, center_times, sample_rate, window_size, hop_size)

    taper = hann_window(window_size)
    offsets = np.arange(window_size)
    chunk = max(1, _BLOCK_ELEMENTS // window_size)

    for lo in range(0, len(bins), chunk):
        columns = slice(lo, lo + chunk)
        cos_basis, sin_basis = _dft_basis(window_size, bins[columns])

        for first in range(0, n_frames, chunk):
            block_starts = starts[first:first + chunk]
            windows = samples[block_starts[:, None] + offsets] * taper
            real = windows @ cos_basis
            imag = windows @ sin_basis
            magnitudes[first:first + len(block_starts), columns] = np.sqrt(real * real + imag * imag)

    logger.debug(
        f"Framed {n_frames} windows (N={window_size}, hop={hop_size}, "
        f"{len(bins)} bins in {band_hz[0]:.0f}-{band_hz[1]:.0f} Hz)"
    )
    return Spectrogram(magnitudes, bins, center_times, sample_rate, window_size, hop_size)
