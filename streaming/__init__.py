"""
streaming — Side-effectful layer around core/pitch.

Everything that owns a thread, a timer, a file or a model lives here:

    capture       AudioChunk envelope and PCM encoding
    settings      Environment-driven runtime settings
    model_loader  TFLite-backed PitchClassifier with an explicit lifecycle
    audio_loader  File I/O boundary for offline replay
    session       ListeningSession: classic path, ML timer, fusion, display
"""
