# tempokey: offline tempo and key estimation for decoded audio
# Package: tempokey

__version__ = "1.0.0-dev"
__author__ = "tempokey Contributors"
__description__ = "Tempo (BPM) and musical key estimation from mono PCM audio"

# Module structure:
#   - tempokey.models   : AudioSignal, Key, AnalysisResult
#   - tempokey.analyze  : Spectral framing, onsets, tempo, chroma/key, orchestrator
#   - tempokey.worker   : Isolated per-request analysis process
#   - tempokey.decode   : AudioDecoder capability (aubio)
#   - tempokey.config   : Configuration management
#   - tempokey.cli      : Batch command-line analysis
