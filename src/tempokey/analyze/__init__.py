"""
Analysis engine: estimate tempo (BPM) and key from a mono PCM signal.

- Pure, synchronous, single-threaded per call
- No state shared between calls
- Deterministic: identical input gives identical output
"""

__all__ = ["spectral", "onset", "tempo", "key", "strategy", "engine"]
