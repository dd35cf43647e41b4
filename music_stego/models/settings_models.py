"""Parameter models for encoding and decoding.

Every public operation accepts one of these models, or keyword options
that are validated into one. Unsupported keys and modes are not errors:
they fall back to the defaults so that a message is always produced.
"""

import logging

from pydantic import BaseModel, Field, field_validator

from music_stego.models.core_models import EncodingMode

logger = logging.getLogger(__name__)

SUPPORTED_KEYS = ("c_major", "a_minor", "g_major", "d_major")
DEFAULT_KEY = "c_major"


def _coerce_key(value) -> str:
    key = str(value).lower()
    if key not in SUPPORTED_KEYS:
        logger.warning(f"Unsupported key {value!r}, using {DEFAULT_KEY}")
        return DEFAULT_KEY
    return key


class EncodeParams(BaseModel):
    """Configuration for turning a message into a MIDI file.

    Attributes:
        tempo: Tempo in beats per minute (30-240, default 120).
        key: Musical key for scale lookups (default "c_major").
        mode: Encoding strategy (default multi_layer).
        add_harmony: Whether to write a decorative chord track.
    """

    tempo: int = Field(120, ge=30, le=240, description="Tempo in BPM")
    key: str = Field(DEFAULT_KEY, description="Musical key")
    mode: EncodingMode = Field(EncodingMode.MULTI_LAYER, description="Encoding mode")
    add_harmony: bool = Field(True, description="Add a harmony track")

    @field_validator("key", mode="before")
    @classmethod
    def _fallback_key(cls, value):
        return _coerce_key(value)

    @field_validator("mode", mode="before")
    @classmethod
    def _fallback_mode(cls, value):
        return EncodingMode.coerce(value)


class DecodeParams(BaseModel):
    """Configuration for recovering a message from a MIDI file.

    Attributes:
        mode: Encoding strategy to invert, or None to auto-detect.
        key: Musical key the message was encoded in.
    """

    mode: EncodingMode | None = Field(None, description="Mode, None to auto-detect")
    key: str = Field(DEFAULT_KEY, description="Musical key")

    @field_validator("key", mode="before")
    @classmethod
    def _fallback_key(cls, value):
        return _coerce_key(value)

    @field_validator("mode", mode="before")
    @classmethod
    def _fallback_mode(cls, value):
        if value is None:
            return None
        return EncodingMode.coerce(value)


def resolve_params(params, model, options: dict):
    """Merge keyword overrides into a params object.

    Args:
        params: Existing params instance or None.
        model: Params class to build when params is None.
        options: Keyword overrides.

    Returns:
        A validated params instance.
    """
    if params is None:
        return model(**options)
    if options:
        return model(**{**params.model_dump(), **options})
    return params
