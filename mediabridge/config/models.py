"""
Pydantic models for the media bridge configuration.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from mediabridge.scripts import DEMO_GREETING, DEMO_INSTRUCTIONS


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    path: str = Field(default="/ws")  # Twilio <Stream url=...> target


class HealthConfig(BaseModel):
    enabled: bool = Field(default=True)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=15000)


class GeminiLiveConfig(BaseModel):
    api_key: Optional[str] = None
    endpoint: str = Field(
        default="wss://generativelanguage.googleapis.com/ws/"
        "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
    )
    model: str = Field(default="gemini-2.0-flash-exp")
    default_voice: str = Field(default="Puck")
    response_modalities: List[str] = Field(default_factory=lambda: ["AUDIO"])
    input_sample_rate_hz: int = Field(default=24000)
    output_sample_rate_hz: int = Field(default=24000)
    setup_timeout_sec: float = Field(default=10.0)
    max_message_bytes: int = Field(default=10 * 1024 * 1024)
    enable_input_transcription: bool = Field(default=False)
    enable_output_transcription: bool = Field(default=False)


class CallPolicyConfig(BaseModel):
    max_call_duration_sec: float = Field(default=300.0)
    silence_timeout_sec: float = Field(default=15.0)
    barge_in_threshold: float = Field(default=5000.0)  # RMS of 8 kHz PCM16
    max_ai_turns: int = Field(default=5)
    turn_limit_grace_sec: float = Field(default=2.0)
    goodbye_grace_sec: float = Field(default=2.0)
    end_call_tool_grace_sec: float = Field(default=3.0)
    receive_poll_interval_sec: float = Field(default=0.1)
    goodbye_phrases: List[str] = Field(
        default_factory=lambda: ["goodbye", "bye", "take care", "have a great day"]
    )

    @field_validator("goodbye_phrases")
    @classmethod
    def _lowercase_phrases(cls, phrases: List[str]) -> List[str]:
        return [p.strip().lower() for p in phrases if p and p.strip()]


class ScriptConfig(BaseModel):
    instructions: str = Field(default=DEMO_INSTRUCTIONS)
    greeting: str = Field(default=DEMO_GREETING)


class LoggingConfig(BaseModel):
    level: str = Field(default="info")


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    gemini: GeminiLiveConfig = Field(default_factory=GeminiLiveConfig)
    call_policy: CallPolicyConfig = Field(default_factory=CallPolicyConfig)
    script: ScriptConfig = Field(default_factory=ScriptConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
