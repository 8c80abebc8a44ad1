"""
Media bridge between Twilio Media Streams and the Gemini Live API.

Telephony audio (μ-law 8 kHz) is transcoded to PCM16 24 kHz for Gemini and
Gemini audio is transcoded back, while a per-call handler drives turn-taking,
barge-in, timeouts and call termination.
"""

__version__ = "1.0.0"
