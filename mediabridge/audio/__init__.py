from .codec import (
    GEMINI_SAMPLE_RATE,
    MULAW_BIAS,
    MULAW_CLIP,
    TELEPHONY_SAMPLE_RATE,
    compute_rms,
    mulaw_to_pcm16le,
    pcm16le_to_mulaw,
    resample_audio,
)

__all__ = [
    "GEMINI_SAMPLE_RATE",
    "MULAW_BIAS",
    "MULAW_CLIP",
    "TELEPHONY_SAMPLE_RATE",
    "compute_rms",
    "mulaw_to_pcm16le",
    "pcm16le_to_mulaw",
    "resample_audio",
]
