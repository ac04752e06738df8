"""
Analysis orchestrator: sequences the tempo and key paths for one signal.

Tempo:  FRAMING_TEMPO -> ONSET_DETECTING -> PEAK_PICKING
        -> [FALLING_BACK_TO_AUTOCORRELATION] -> TEMPO_DONE
Key:    EXTRACTING_CHROMA -> CLASSIFYING_KEY -> KEY_DONE
Both converge at COMPLETE.

Degenerate input (shorter than 5 s, or all zeros) skips the tempo
pipeline and reports the default 120 BPM. Unexpected failures surface as
AnalysisError; nothing is retried here.
"""

import enum
import logging
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from tempokey.analyze.key import classify_key, extract_chroma
from tempokey.analyze.onset import spectral_flux
from tempokey.analyze.spectral import frame_spectra
from tempokey.analyze.strategy import ChromaStrategy, OnsetStrategy
from tempokey.analyze.tempo import (
    DEFAULT_TEMPO_BPM,
    MAX_TEMPO_BPM,
    MIN_TEMPO_BPM,
    autocorrelation_tempo,
    estimate_tempo_from_envelope,
    highpass,
)
from tempokey.config import Config
from tempokey.models import AnalysisResult, AudioSignal, Key

logger = logging.getLogger(__name__)

MIN_TEMPO_DURATION_SECONDS = 5.0

# Anything that turns a source (path, bytes, ...) into an AudioSignal
AudioDecoder = Callable[[Any], AudioSignal]


class AnalysisError(Exception):
    """Raised when analysis fails for a reason other than degenerate input."""
    pass


class AnalysisState(enum.Enum):
    IDLE = "idle"
    FRAMING_TEMPO = "framing_tempo"
    ONSET_DETECTING = "onset_detecting"
    PEAK_PICKING = "peak_picking"
    FALLING_BACK_TO_AUTOCORRELATION = "falling_back_to_autocorrelation"
    TEMPO_DONE = "tempo_done"
    EXTRACTING_CHROMA = "extracting_chroma"
    CLASSIFYING_KEY = "classifying_key"
    KEY_DONE = "key_done"
    COMPLETE = "complete"


class AnalysisOrchestrator:
    """
    Single-shot analysis of one AudioSignal.

    Create a fresh instance per request; run() may be called once.
    """

    def __init__(
        self,
        onset_strategy: Optional[OnsetStrategy] = None,
        chroma_strategy: Optional[ChromaStrategy] = None,
    ):
        self.onset_strategy = onset_strategy or OnsetStrategy()
        self.chroma_strategy = chroma_strategy or ChromaStrategy()
        self.state = AnalysisState.IDLE
        self.history: List[AnalysisState] = [AnalysisState.IDLE]

    @classmethod
    def from_config(cls, config: Config) -> "AnalysisOrchestrator":
        return cls(OnsetStrategy.from_config(config), ChromaStrategy.from_config(config))

    def _enter(self, state: AnalysisState) -> None:
        if state in self.history:
            raise RuntimeError(f"State {state.value} re-entered")
        self.state = state
        self.history.append(state)

    def run(self, signal: AudioSignal) -> AnalysisResult:
        """
        Analyze a signal.

        Raises:
            RuntimeError: If this orchestrator has already run
            AnalysisError: On unexpected numeric failure
        """
        if self.state is not AnalysisState.IDLE:
            raise RuntimeError("AnalysisOrchestrator is single-shot; create a new instance")

        logger.debug(f"Analyzing {signal!r}")
        try:
            tempo_bpm, method = self._run_tempo(signal)
            key = self._run_key(signal)
        except AnalysisError:
            raise
        except Exception as e:
            raise AnalysisError(f"Analysis failed: {e}") from e

        if not (MIN_TEMPO_BPM <= tempo_bpm <= MAX_TEMPO_BPM):
            raise AnalysisError(f"Tempo {tempo_bpm} outside [{MIN_TEMPO_BPM}, {MAX_TEMPO_BPM}]")

        self._enter(AnalysisState.COMPLETE)
        result = AnalysisResult(tempo_bpm=tempo_bpm, key=key, tempo_method=method)
        logger.info(f"✅ Analysis complete: {tempo_bpm} BPM ({method}), key {key.label}")
        return result

    def _run_tempo(self, signal: AudioSignal) -> Tuple[int, str]:
        strategy = self.onset_strategy
        sr = signal.sample_rate

        if signal.duration_seconds < MIN_TEMPO_DURATION_SECONDS:
            logger.warning(
                f"Audio too short for tempo analysis ({signal.duration_seconds:.2f}s < "
                f"{MIN_TEMPO_DURATION_SECONDS}s); using {DEFAULT_TEMPO_BPM} BPM"
            )
            self._enter(AnalysisState.TEMPO_DONE)
            return DEFAULT_TEMPO_BPM, "default"

        if signal.is_silent():
            logger.warning(f"Silent input; using {DEFAULT_TEMPO_BPM} BPM")
            self._enter(AnalysisState.TEMPO_DONE)
            return DEFAULT_TEMPO_BPM, "default"

        usable = int(min(len(signal), sr * strategy.max_analysis_seconds))
        samples = signal.samples[:usable]
        if strategy.highpass_alpha is not None:
            samples = highpass(samples, strategy.highpass_alpha)

        self._enter(AnalysisState.FRAMING_TEMPO)
        spectrogram = frame_spectra(samples, sr, strategy.window_size, strategy.hop_size, strategy.band_hz)

        self._enter(AnalysisState.ONSET_DETECTING)
        envelope = spectral_flux(spectrogram, strategy.low_bin_cutoff)
        if not np.all(np.isfinite(envelope)):
            raise AnalysisError("Onset envelope contains non-finite values")

        self._enter(AnalysisState.PEAK_PICKING)
        bpm = estimate_tempo_from_envelope(envelope, sr, strategy.hop_size, strategy.interval_selector)
        method = "onset"

        if bpm is None:
            self._enter(AnalysisState.FALLING_BACK_TO_AUTOCORRELATION)
            logger.debug("Not enough onset peaks, using autocorrelation fallback")
            bpm = autocorrelation_tempo(
                samples,
                sr,
                max_seconds=strategy.autocorr_max_seconds,
                lag_step=strategy.autocorr_lag_step,
                sample_step=strategy.autocorr_sample_step,
            )
            method = "autocorrelation"

        self._enter(AnalysisState.TEMPO_DONE)
        logger.info(f"✅ Tempo detected: {bpm} BPM (method: {method})")
        return bpm, method

    def _run_key(self, signal: AudioSignal) -> Key:
        self._enter(AnalysisState.EXTRACTING_CHROMA)
        chroma = extract_chroma(signal.samples, signal.sample_rate, self.chroma_strategy)
        if not np.all(np.isfinite(chroma)):
            raise AnalysisError("Chromagram contains non-finite values")

        self._enter(AnalysisState.CLASSIFYING_KEY)
        key = classify_key(chroma)

        self._enter(AnalysisState.KEY_DONE)
        logger.info(f"✅ Key detected: {key.label} ({key.camelot})")
        return key


def analyze(signal: AudioSignal, config: Optional[Config] = None) -> AnalysisResult:
    """Analyze one signal with a fresh orchestrator."""
    if config is None:
        orchestrator = AnalysisOrchestrator()
    else:
        orchestrator = AnalysisOrchestrator.from_config(config)
    return orchestrator.run(signal)


def analyze_source(source: Any, decoder: AudioDecoder, config: Optional[Config] = None) -> AnalysisResult:
    """
    Decode `source` with the given decoder capability, then analyze it.

    Args:
        source: Whatever the decoder accepts (usually a file path)
        decoder: Callable returning an AudioSignal
        config: Optional Config for strategy parameters
    """
    signal = decoder(source)
    return analyze(signal, config)
