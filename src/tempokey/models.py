"""
Value types shared by the analysis engine and its callers.

- AudioSignal: mono PCM samples + sample rate (input)
- Key: root pitch class + mode
- AnalysisResult: tempo + key (the only externally visible output)

Nothing here outlives a single analysis call except the constants.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
MODES = ("major", "minor")

# Camelot wheel (A = minor, B = major)
STANDARD_TO_CAMELOT_MAJOR = {
    "C": "8B",
    "C#": "3B",
    "D": "10B",
    "D#": "5B",
    "E": "12B",
    "F": "7B",
    "F#": "2B",
    "G": "9B",
    "G#": "4B",
    "A": "11B",
    "A#": "6B",
    "B": "1B",
}

STANDARD_TO_CAMELOT_MINOR = {
    "C": "5A",
    "C#": "12A",
    "D": "7A",
    "D#": "2A",
    "E": "9A",
    "F": "4A",
    "F#": "11A",
    "G": "6A",
    "G#": "1A",
    "A": "8A",
    "A#": "3A",
    "B": "10A",
}


@dataclass(frozen=True)
class AudioSignal:
    """
    Immutable mono PCM buffer.

    `samples` is always the single-channel sequence; `channel_count` records
    how many channels the source had before it was down-mixed by the caller.

    Raises:
        ValueError: If samples are empty or not 1-D, or sample_rate/channel_count
            are not positive.
    """

    samples: np.ndarray
    sample_rate: int
    channel_count: int = 1

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim != 1:
            raise ValueError(f"samples must be 1-D (mono), got shape {samples.shape}")
        if samples.size < 1:
            raise ValueError("samples must contain at least one value")
        if int(self.sample_rate) <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if int(self.channel_count) <= 0:
            raise ValueError(f"channel_count must be positive, got {self.channel_count}")

        # Own a private read-only copy so callers cannot mutate it mid-analysis
        samples = samples.copy()
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))
        object.__setattr__(self, "channel_count", int(self.channel_count))

    @classmethod
    def from_sequence(
        cls,
        samples: Union[Sequence[float], np.ndarray],
        sample_rate: int,
        channel_count: int = 1,
    ) -> "AudioSignal":
        return cls(np.asarray(samples, dtype=np.float32), sample_rate, channel_count)

    @property
    def duration_seconds(self) -> float:
        return len(self.samples) / self.sample_rate

    def is_silent(self) -> bool:
        """True when every sample is exactly zero."""
        return not np.any(self.samples)

    def __len__(self) -> int:
        return len(self.samples)

    def __repr__(self) -> str:
        return (
            f"AudioSignal(samples={len(self.samples)}, sample_rate={self.sample_rate}, "
            f"duration={self.duration_seconds:.2f}s)"
        )


@dataclass(frozen=True)
class Key:
    """Musical key: one of 12 roots x {major, minor}."""

    root: str
    mode: str

    def __post_init__(self):
        if self.root not in NOTE_NAMES:
            raise ValueError(f"Unknown root: {self.root}")
        if self.mode not in MODES:
            raise ValueError(f"Unknown mode: {self.mode}")

    @classmethod
    def parse(cls, label: str) -> "Key":
        """Parse a label such as 'A# Minor' back into a Key."""
        parts = label.split()
        if len(parts) != 2:
            raise ValueError(f"Cannot parse key label: {label!r}")
        return cls(root=parts[0], mode=parts[1].lower())

    @property
    def root_index(self) -> int:
        return NOTE_NAMES.index(self.root)

    @property
    def label(self) -> str:
        """Wire rendering, e.g. 'C Major', 'F# Minor'."""
        return f"{self.root} {self.mode.capitalize()}"

    @property
    def camelot(self) -> str:
        mapping = STANDARD_TO_CAMELOT_MAJOR if self.mode == "major" else STANDARD_TO_CAMELOT_MINOR
        return mapping[self.root]

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class AnalysisResult:
    """Final output of one analysis invocation."""

    tempo_bpm: int
    key: Key
    tempo_method: str = field(default="onset", compare=False)  # onset | autocorrelation | default

    def to_dict(self) -> dict:
        return {"tempo_bpm": self.tempo_bpm, "key": self.key.label}
