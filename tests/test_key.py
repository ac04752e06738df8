"""
Unit tests for chroma extraction and Krumhansl-Schmuckler key classification.
"""

import pytest
import numpy as np
from tempokey.analyze.key import (
    MAJOR_PROFILE,
    MINOR_PROFILE,
    chroma_mapping,
    classify_key,
    extract_chroma,
    key_scores,
    normalize_chroma,
    pitch_frequency,
)
from tempokey.analyze.strategy import ChromaStrategy
from tempokey.models import Key, NOTE_NAMES

from conftest import make_sine


def _chroma(*notes):
    chroma = np.zeros(12)
    for n in notes:
        chroma[NOTE_NAMES.index(n)] = 1.0
    return chroma


class TestPitchFrequency:
    """Test equal-tempered pitch mapping."""

    def test_a4(self):
        assert pitch_frequency(9, 4) == pytest.approx(440.0)

    def test_c4(self):
        assert pitch_frequency(0, 4) == pytest.approx(261.63, abs=0.01)

    def test_octave_doubles(self):
        assert pitch_frequency(0, 5) == pytest.approx(2 * pitch_frequency(0, 4))


class TestProfiles:
    """Test the constant K-S templates."""

    def test_unit_norm(self):
        assert np.linalg.norm(MAJOR_PROFILE) == pytest.approx(1.0)
        assert np.linalg.norm(MINOR_PROFILE) == pytest.approx(1.0)

    def test_read_only(self):
        with pytest.raises(ValueError):
            MAJOR_PROFILE[0] = 0.0


class TestNormalizeChroma:
    """Test max-normalization."""

    def test_max_is_one(self):
        chroma = normalize_chroma(np.arange(12, dtype=float))
        assert chroma.max() == 1.0

    def test_idempotent(self):
        """Normalizing an already normalized chromagram changes nothing."""
        once = normalize_chroma(np.array([3.0, 1.0, 0.5] + [0.0] * 9))
        twice = normalize_chroma(once)
        assert np.array_equal(once, twice)

    def test_all_zero_stays_zero(self):
        assert np.all(normalize_chroma(np.zeros(12)) == 0.0)


class TestChromaMapping:
    """Test spectrum -> pitch-class mapping matrix."""

    def test_c4_bin_maps_to_c(self):
        strategy = ChromaStrategy()
        mapping = chroma_mapping(2048, 4096, 44100, strategy)
        c4_bin = int(round(pitch_frequency(0, 4) * 4096 / 44100))
        assert mapping[0, c4_bin] == pytest.approx(1.0)  # octave 4 weight, centre bin
        assert mapping[0, c4_bin + 1] == pytest.approx(0.5)

    def test_low_octaves_weighted_up(self):
        strategy = ChromaStrategy()
        mapping = chroma_mapping(2048, 4096, 44100, strategy)
        a2_bin = int(round(pitch_frequency(9, 2) * 4096 / 44100))
        a6_bin = int(round(pitch_frequency(9, 6) * 4096 / 44100))
        assert mapping[9, a2_bin] > mapping[9, a6_bin]


class TestExtractChroma:
    """Test chromagram extraction from audio."""

    def test_c4_sine_dominant_c(self, c4_sine):
        chroma = extract_chroma(c4_sine.samples, c4_sine.sample_rate)
        assert chroma.shape == (12,)
        assert int(np.argmax(chroma)) == 0
        assert chroma[0] == 1.0

    def test_a4_sine_dominant_a(self):
        signal = make_sine(440.0)
        chroma = extract_chroma(signal.samples, signal.sample_rate)
        assert int(np.argmax(chroma)) == 9

    def test_silence_all_zero(self, silence):
        chroma = extract_chroma(silence.samples, silence.sample_rate)
        assert chroma.shape == (12,)
        assert np.all(chroma == 0.0)

    def test_shorter_than_window(self):
        chroma = extract_chroma(np.ones(1000, dtype=np.float32), 44100)
        assert np.all(chroma == 0.0)

    def test_larger_fft(self, c4_sine):
        strategy = ChromaStrategy(fft_size=16384, hop_size=4096)
        chroma = extract_chroma(c4_sine.samples, c4_sine.sample_rate, strategy)
        assert int(np.argmax(chroma)) == 0

    def test_non_negative_and_bounded(self, noise):
        chroma = extract_chroma(noise.samples, noise.sample_rate)
        assert np.all(chroma >= 0.0)
        assert chroma.max() == pytest.approx(1.0)


class TestClassifyKey:
    """Test 24-way key classification."""

    def test_c_major_triad(self):
        assert classify_key(_chroma("C", "E", "G")) == Key("C", "major")

    def test_a_minor_triad(self):
        assert classify_key(_chroma("A", "C", "E")) == Key("A", "minor")

    def test_c_major_scale(self):
        assert classify_key(_chroma("C", "D", "E", "F", "G", "A", "B")).root in ("C", "A")

    def test_transposition(self):
        """Rotating the chromagram by r semitones moves the root by r."""
        base = classify_key(_chroma("C", "E", "G"))
        for r in range(12):
            shifted = classify_key(np.roll(_chroma("C", "E", "G"), r))
            assert shifted.mode == base.mode
            assert shifted.root == NOTE_NAMES[r]

    def test_silence_defaults_to_c_major(self):
        """All-zero chroma ties everywhere; the first candidate (C major) wins."""
        assert classify_key(np.zeros(12)) == Key("C", "major")

    def test_uniform_chroma_tie_break(self):
        """Equal scores across roots keep the lowest root."""
        key = classify_key(np.ones(12))
        assert key.root == "C"

    def test_pure_c_tone(self, c4_sine):
        chroma = extract_chroma(c4_sine.samples, c4_sine.sample_rate)
        assert classify_key(chroma).root == "C"

    def test_score_formula(self):
        chroma = _chroma("D", "F#", "A")
        scores = key_scores(chroma)
        expected = sum(chroma[(i + 2) % 12] * MAJOR_PROFILE[i] for i in range(12))
        assert scores[2, 0] == pytest.approx(expected)

    def test_rejects_wrong_shape(self):
        with pytest.raises(ValueError):
            classify_key(np.ones(11))

    def test_always_one_of_24(self, noise):
        key = classify_key(extract_chroma(noise.samples, noise.sample_rate))
        assert key.root in NOTE_NAMES
        assert key.mode in ("major", "minor")
