"""
Audio decoding: turn an audio file into a mono AudioSignal.

The analysis engine never decodes on its own; callers hand it a decoder
(any callable source -> AudioSignal). AubioDecoder is the stock one and
streams the file through aubio, which down-mixes to mono on read.
"""

import logging
from pathlib import Path
from typing import Optional

import numpy as np

from tempokey.models import AudioSignal

logger = logging.getLogger(__name__)

# Supported audio formats
AUDIO_FORMATS = {".mp3", ".m4a", ".flac", ".wav", ".aif", ".aiff", ".ogg"}


class DecodeError(Exception):
    """Raised when an audio file cannot be decoded."""
    pass


class AubioDecoder:
    """Decode files with aubio.source at their native sample rate."""

    def __init__(self, hop_size: int = 512, max_duration: Optional[float] = None):
        """
        Args:
            hop_size: Samples read per aubio call
            max_duration: Stop after this many seconds (None = whole file)
        """
        self.hop_size = hop_size
        self.max_duration = max_duration

    def __call__(self, audio_path) -> AudioSignal:
        return self.decode(audio_path)

    def decode(self, audio_path) -> AudioSignal:
        """
        Read an audio file into a mono AudioSignal.

        Raises:
            DecodeError: If the file is missing, unreadable or empty
        """
        path = Path(audio_path)
        if not path.exists():
            raise DecodeError(f"Audio file not found: {path}")

        try:
            import aubio
        except ImportError as e:
            raise DecodeError("aubio is not installed (pip install tempokey[decode])") from e

        try:
            source = aubio.source(str(path), samplerate=0, hop_size=self.hop_size)
        except Exception as e:
            raise DecodeError(f"Could not open {path}: {e}") from e

        sample_rate = int(source.samplerate)
        channels = int(source.channels)
        max_samples = None
        if self.max_duration is not None:
            max_samples = int(self.max_duration * sample_rate)

        chunks = []
        total = 0
        try:
            while True:
                samples, num_read = source()
                if num_read == 0:
                    break
                chunks.append(np.array(samples[:num_read], dtype=np.float32))
                total += num_read
                if num_read < self.hop_size:
                    break
                if max_samples is not None and total >= max_samples:
                    break
        except Exception as e:
            raise DecodeError(f"Failed while reading {path}: {e}") from e
        finally:
            source.close()

        if total == 0:
            raise DecodeError(f"No audio samples in {path}")

        data = np.concatenate(chunks)
        if max_samples is not None:
            data = data[:max_samples]

        signal = AudioSignal(data, sample_rate, channel_count=channels)
        logger.debug(f"Decoded {path.name}: {signal!r}, {channels} channel(s)")
        return signal


def discover_audio_files(library_path: str) -> list:
    """
    Find all supported audio files under a directory (recursive).

    Args:
        library_path: Directory to scan.

    Returns:
        Sorted list of audio file paths.
    """
    lib_path = Path(library_path)

    if not lib_path.exists():
        logger.warning(f"Library path not found: {library_path}")
        return []

    audio_files = [
        p for p in lib_path.rglob("*")
        if p.is_file() and p.suffix.lower() in AUDIO_FORMATS
    ]

    logger.info(f"Found {len(audio_files)} audio files in {library_path}")
    return sorted(audio_files)
