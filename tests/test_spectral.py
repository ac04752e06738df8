"""
Unit tests for spectral framing.

Tests Hann taper, frame counting, band limiting and DFT magnitudes.
"""

import pytest
import numpy as np
from tempokey.analyze import spectral
from tempokey.analyze.spectral import (
    band_bins,
    frame_count,
    frame_spectra,
    hann_window,
)


class TestHannWindow:
    """Test the Hann taper."""

    def test_endpoints_are_zero(self):
        """Symmetric Hann starts and ends at zero."""
        w = hann_window(2048)
        assert w[0] == pytest.approx(0.0)
        assert w[-1] == pytest.approx(0.0, abs=1e-12)

    def test_symmetric(self):
        w = hann_window(1024)
        assert np.allclose(w, w[::-1])

    def test_peak_near_one(self):
        w = hann_window(2049)
        assert w[1024] == pytest.approx(1.0)

    def test_rejects_tiny_window(self):
        with pytest.raises(ValueError):
            hann_window(1)


class TestFrameCount:
    """Test frame count formula floor((L - N) / hop)."""

    def test_basic(self):
        assert frame_count(441000, 2048, 512) == (441000 - 2048) // 512

    def test_shorter_than_window(self):
        """Input shorter than one window yields zero frames, not an error."""
        assert frame_count(1000, 2048, 512) == 0

    def test_exactly_one_window(self):
        assert frame_count(2048, 2048, 512) == 0


class TestBandBins:
    """Test sub-band bin selection."""

    def test_tempo_band(self):
        """20-400 Hz at 44.1 kHz / 2048 covers bins 1..18."""
        bins = band_bins(2048, 44100, (20.0, 400.0))
        assert bins[0] == 1
        assert bins[-1] == 18

    def test_key_band(self):
        bins = band_bins(4096, 44100, (80.0, 2000.0))
        freqs = bins * 44100 / 4096
        assert freqs.min() >= 80.0
        assert freqs.max() <= 2000.0

    def test_never_includes_dc(self):
        bins = band_bins(1024, 8000, (0.0, 4000.0))
        assert 0 not in bins


class TestFrameSpectra:
    """Test band-limited magnitude spectra."""

    def test_matches_fft_in_band(self):
        """Direct DFT magnitudes agree with numpy's FFT on in-band bins."""
        rng = np.random.RandomState(0)
        samples = rng.normal(size=8192)
        spec = frame_spectra(samples, 44100, 2048, 512, (20.0, 400.0))

        taper = hann_window(2048)
        expected = np.abs(np.fft.rfft(samples[512:512 + 2048] * taper))
        frame = spec.frame(1)

        assert np.allclose(frame.bin_magnitudes[spec.bins], expected[spec.bins], rtol=1e-6, atol=1e-6)

    def test_out_of_band_bins_are_zero(self):
        rng = np.random.RandomState(1)
        spec = frame_spectra(rng.normal(size=8192), 44100, 2048, 512, (20.0, 400.0))
        frame = spec.frame(0)

        mask = np.ones(spec.num_bins, dtype=bool)
        mask[spec.bins] = False
        assert np.all(frame.bin_magnitudes[mask] == 0.0)

    def test_frame_count_and_times(self):
        samples = np.zeros(10000)
        spec = frame_spectra(samples, 1000, 1000, 500, (1.0, 400.0))
        assert len(spec) == (10000 - 1000) // 500
        # Centre of first frame is half a window in
        assert spec.center_times[0] == pytest.approx(0.5)
        assert spec.center_times[1] == pytest.approx(1.0)

    def test_short_input_no_frames(self):
        spec = frame_spectra(np.ones(100), 44100, 2048, 512, (20.0, 400.0))
        assert len(spec) == 0
        assert np.all(spec.summed_spectrum() == 0.0)

    def test_sine_peaks_at_its_bin(self):
        """A 1 kHz tone (exactly on bin 100 for N=1000 at 10 kHz) peaks at that bin."""
        sr = 10000
        t = np.arange(sr) / sr
        spec = frame_spectra(np.sin(2 * np.pi * 1000 * t), sr, 1000, 500, (80.0, 2000.0))
        summed = spec.summed_spectrum()
        assert int(np.argmax(summed)) == 100

    def test_deterministic(self):
        rng = np.random.RandomState(7)
        samples = rng.normal(size=20000)
        a = frame_spectra(samples, 44100, 2048, 512, (20.0, 400.0))
        b = frame_spectra(samples, 44100, 2048, 512, (20.0, 400.0))
        assert np.array_equal(a.magnitudes, b.magnitudes)

    def test_block_boundaries_do_not_change_result(self):
        """Large inputs are processed in blocks; results match per-frame computation."""
        rng = np.random.RandomState(3)
        samples = rng.normal(size=2048 + 512 * 1500)
        spec = frame_spectra(samples, 44100, 2048, 512, (20.0, 400.0))

        taper = hann_window(2048)
        last = len(spec) - 1
        start = last * 512
        expected = np.abs(np.fft.rfft(samples[start:start + 2048] * taper))[spec.bins]
        assert np.allclose(spec.magnitudes[last], expected, rtol=1e-6, atol=1e-6)

    def test_large_window_basis_is_chunked(self, monkeypatch):
        """A 16384-point window never builds a basis wider than one block."""
        calls = []
        real_basis = spectral._dft_basis

        def _recording_basis(window_size, bins):
            calls.append(len(bins))
            return real_basis(window_size, bins)

        monkeypatch.setattr(spectral, "_dft_basis", _recording_basis)

        rng = np.random.RandomState(11)
        samples = rng.normal(size=16384 + 4096 * 3)
        spec = frame_spectra(samples, 44100, 16384, 4096, (80.0, 2000.0))

        assert len(calls) > 1
        assert sum(calls) == len(spec.bins)
        assert max(calls) * 16384 <= spectral._BLOCK_ELEMENTS

        taper = hann_window(16384)
        expected = np.abs(np.fft.rfft(samples[4096:4096 + 16384] * taper))[spec.bins]
        assert np.allclose(spec.magnitudes[1], expected, rtol=1e-6, atol=1e-6)

    def test_block_size_does_not_change_result(self, monkeypatch):
        rng = np.random.RandomState(12)
        samples = rng.normal(size=30000)
        reference = frame_spectra(samples, 44100, 4096, 2048, (80.0, 2000.0))

        monkeypatch.setattr(spectral, "_BLOCK_ELEMENTS", 4096 * 7)
        chunked = frame_spectra(samples, 44100, 4096, 2048, (80.0, 2000.0))

        assert np.allclose(chunked.magnitudes, reference.magnitudes, rtol=1e-9, atol=1e-9)
