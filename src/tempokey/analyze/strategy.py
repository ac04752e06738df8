"""
Strategy parameters for the tempo (onset) and key (chroma) paths.

One engine, one algorithm: the strategies only choose window sizes,
analysis spans and frequency bands, so alternative front-ends can be
swapped in without duplicating the pipeline.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from tempokey.config import Config

TEMPO_BAND_HZ = (20.0, 400.0)
KEY_BAND_HZ = (80.0, 2000.0)

# First-order high-pass coefficient for percussive emphasis
HIGHPASS_ALPHA = 0.97


@dataclass(frozen=True)
class OnsetStrategy:
    """Framing + onset parameters for the tempo path."""

    window_size: int = 2048
    hop_size: int = 512
    band_hz: Tuple[float, float] = TEMPO_BAND_HZ
    low_bin_cutoff: int = 10
    max_analysis_seconds: float = 60.0
    highpass_alpha: Optional[float] = None
    interval_selector: str = "median"

    # Autocorrelation fallback
    autocorr_max_seconds: float = 20.0
    autocorr_lag_step: int = 8
    autocorr_sample_step: int = 16

    @classmethod
    def from_config(cls, config: Config) -> "OnsetStrategy":
        tempo = config["tempo"]
        return cls(
            window_size=int(tempo["window_size"]),
            hop_size=int(tempo["hop_size"]),
            max_analysis_seconds=float(tempo["max_analysis_seconds"]),
            highpass_alpha=HIGHPASS_ALPHA if tempo.get("highpass") else None,
            interval_selector=tempo.get("interval_selector", "median"),
        )


@dataclass(frozen=True)
class ChromaStrategy:
    """Framing + pitch-class mapping parameters for the key path."""

    fft_size: int = 4096
    hop_size: int = 2048
    band_hz: Tuple[float, float] = KEY_BAND_HZ
    max_analysis_seconds: float = 45.0
    octaves: Tuple[int, ...] = (2, 3, 4, 5, 6)
    # Bass/root emphasis, one weight per entry in `octaves`
    octave_weights: Tuple[float, ...] = (1.2, 1.1, 1.0, 0.9, 0.8)
    neighbor_bins: int = 1
    neighbor_falloff: float = 0.5

    def __post_init__(self):
        if len(self.octave_weights) != len(self.octaves):
            raise ValueError("octave_weights must have one entry per octave")

    @classmethod
    def from_config(cls, config: Config) -> "ChromaStrategy":
        key = config["key"]
        return cls(
            fft_size=int(key["fft_size"]),
            hop_size=int(key["hop_size"]),
            max_analysis_seconds=float(key["max_analysis_seconds"]),
        )
