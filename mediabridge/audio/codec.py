"""
G.711 μ-law companding, fixed-ratio resampling and RMS measurement.

Twilio Media Streams carry μ-law 8 kHz mono; Gemini Live expects and emits
PCM16 little-endian at 24 kHz. Every function here is pure: inputs are never
modified and each call returns a new ``bytes`` object (except the equal-rate
resample, which hands back its input).

All sample arithmetic truncates with floor division so the byte output is
identical to the reference codec used by the telephony side.
"""

import math
import sys
from array import array

TELEPHONY_SAMPLE_RATE = 8000
GEMINI_SAMPLE_RATE = 24000

MULAW_BIAS = 0x84
MULAW_CLIP = 32635

_BIG_ENDIAN_HOST = sys.byteorder == "big"


def _build_mulaw_decode_table() -> tuple:
    table = []
    for i in range(256):
        byte = ~i & 0xFF
        sign = byte & 0x80
        exponent = (byte >> 4) & 0x07
        mantissa = byte & 0x0F
        sample = (((mantissa << 3) + MULAW_BIAS) << exponent) - MULAW_BIAS
        table.append(-sample if sign else sample)
    return tuple(table)


# Built once at import, shared by every call
MULAW_DECODE_TABLE = _build_mulaw_decode_table()


def _to_samples(pcm: bytes) -> array:
    samples = array("h")
    # A trailing odd byte is not a sample
    samples.frombytes(pcm[: len(pcm) - (len(pcm) % 2)])
    if _BIG_ENDIAN_HOST:
        samples.byteswap()
    return samples


def _to_bytes(samples: array) -> bytes:
    if _BIG_ENDIAN_HOST:
        samples = array("h", samples)
        samples.byteswap()
    return samples.tobytes()


def mulaw_to_pcm16le(data: bytes) -> bytes:
    """Decode μ-law bytes to PCM16 little-endian, one sample per byte."""
    return _to_bytes(array("h", [MULAW_DECODE_TABLE[b] for b in data]))


def _encode_mulaw_sample(sample: int) -> int:
    sign = 0
    if sample < 0:
        sample = -sample
        sign = 0x80
    if sample > MULAW_CLIP:
        sample = MULAW_CLIP
    sample += MULAW_BIAS

    # floor(log2(sample)) - 7; sample is in [0x84, 0x7FFF] so this is 0..7
    exponent = sample.bit_length() - 8
    mantissa = (sample >> (exponent + 3)) & 0x0F
    return ~(sign | (exponent << 4) | mantissa) & 0xFF


def pcm16le_to_mulaw(pcm: bytes) -> bytes:
    """Encode PCM16 little-endian samples to μ-law bytes."""
    return bytes(_encode_mulaw_sample(s) for s in _to_samples(pcm))


def _upsample_x3(samples: array) -> array:
    out = array("h", bytes(2 * 3 * len(samples)))
    for i in range(len(samples) - 1):
        s1 = samples[i]
        s2 = samples[i + 1]
        j = i * 3
        out[j] = s1
        out[j + 1] = (2 * s1 + s2) // 3
        out[j + 2] = (s1 + 2 * s2) // 3
    last = samples[-1]
    j = (len(samples) - 1) * 3
    out[j] = out[j + 1] = out[j + 2] = last
    return out


def _downsample_div3(samples: array) -> array:
    out = array("h", bytes(2 * (len(samples) // 3)))
    for i in range(len(out)):
        j = i * 3
        out[i] = (samples[j] + samples[j + 1] + samples[j + 2]) // 3
    return out


def _resample_linear(samples: array, from_rate: int, to_rate: int) -> array:
    ratio = to_rate / from_rate
    output_length = math.floor(len(samples) * ratio)
    last_index = len(samples) - 1
    out = array("h", bytes(2 * output_length))
    for i in range(output_length):
        src_index = i / ratio
        floor_index = math.floor(src_index)
        ceil_index = min(floor_index + 1, last_index)
        fraction = src_index - floor_index
        s1 = samples[floor_index]
        s2 = samples[ceil_index]
        out[i] = math.floor(s1 + fraction * (s2 - s1))
    return out


def resample_audio(pcm: bytes, from_rate: int, to_rate: int) -> bytes:
    """
    Resample PCM16 little-endian audio.

    8000 -> 24000 and 24000 -> 8000 use closed-form x3 interpolation and
    triple averaging. Other rate pairs fall back to linear interpolation.
    Equal rates return ``pcm`` itself.
    """
    if from_rate == to_rate:
        return pcm
    if from_rate <= 0 or to_rate <= 0:
        raise ValueError(f"Sample rates must be positive (got {from_rate} -> {to_rate})")

    samples = _to_samples(pcm)
    if not samples:
        return b""

    if from_rate == TELEPHONY_SAMPLE_RATE and to_rate == GEMINI_SAMPLE_RATE:
        out = _upsample_x3(samples)
    elif from_rate == GEMINI_SAMPLE_RATE and to_rate == TELEPHONY_SAMPLE_RATE:
        out = _downsample_div3(samples)
    else:
        out = _resample_linear(samples, from_rate, to_rate)
    return _to_bytes(out)


def compute_rms(pcm: bytes) -> float:
    """Root-mean-square level of PCM16 audio; 0.0 for an empty frame."""
    samples = _to_samples(pcm)
    if not samples:
        return 0.0
    return math.sqrt(sum(s * s for s in samples) / len(samples))
