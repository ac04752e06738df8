"""
Shared fixtures: synthetic signals with known tempo / pitch content.
"""

import numpy as np
import pytest

from tempokey.models import AudioSignal

SAMPLE_RATE = 44100


def make_click_track(bpm=120.0, seconds=10.0, sample_rate=SAMPLE_RATE):
    """Unit impulses every 60/bpm seconds, starting at t=0."""
    samples = np.zeros(int(seconds * sample_rate), dtype=np.float32)
    positions = np.round(np.arange(0.0, seconds, 60.0 / bpm) * sample_rate).astype(int)
    samples[positions[positions < len(samples)]] = 1.0
    return AudioSignal(samples, sample_rate)


def make_sine(freq, seconds=5.0, sample_rate=SAMPLE_RATE, amplitude=0.5):
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return AudioSignal(amplitude * np.sin(2 * np.pi * freq * t), sample_rate)


@pytest.fixture
def click_track():
    """10 s of clicks at 120 BPM, 44.1 kHz."""
    return make_click_track()


@pytest.fixture
def c4_sine():
    """5 s pure tone at C4 (261.63 Hz)."""
    return make_sine(261.63)


@pytest.fixture
def silence():
    return AudioSignal(np.zeros(8 * SAMPLE_RATE, dtype=np.float32), SAMPLE_RATE)


@pytest.fixture
def noise():
    rng = np.random.RandomState(1234)
    return AudioSignal(rng.uniform(-0.5, 0.5, 6 * SAMPLE_RATE), SAMPLE_RATE)
