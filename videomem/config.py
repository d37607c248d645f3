"""
Configuration models and loading.

Every recognized option is declared on the pydantic models below; unknown keys
are rejected. ``resolve_config`` is the single place where partial user
overrides are merged over the defaults, and every top-level component
(Encoder, Retriever, ChatSession) resolves its configuration through it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from videomem.exceptions import ConfigurationError
from videomem.logging_utils import get_component_logger

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant interacting with a user about a video's content. "
    "Use the provided context from the video to answer questions. "
    "Be concise and informative."
)


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ============================================================
# Sections
# ============================================================


class CodecConfig(_Section):
    """A named video preset."""

    video_file_type: str = Field(default="mp4", description="Container extension")
    video_fps: float = Field(default=30.0, gt=0, description="Frames per second")
    frame_width: int = Field(default=1280, ge=16, description="Frame width in pixels")
    frame_height: int = Field(default=720, ge=16, description="Frame height in pixels")
    video_crf: int | None = Field(default=None, ge=0, description="Constant rate factor")
    video_bitrate: str | None = Field(default=None, description="Target bitrate, e.g. 1500k")
    codec_name: str = Field(default="libx264", description="ffmpeg encoder name")
    pix_fmt: str = Field(default="yuv420p", description="Pixel format")
    extra_ffmpeg_args: list[str] = Field(default_factory=list)


DEFAULT_CODEC_PARAMETERS: dict[str, dict[str, Any]] = {
    "h264": {
        "video_file_type": "mp4",
        "video_fps": 30,
        "frame_width": 1280,
        "frame_height": 720,
        "video_bitrate": "1500k",
        "codec_name": "libx264",
        "pix_fmt": "yuv420p",
        "extra_ffmpeg_args": ["-preset", "medium", "-tune", "stillimage"],
    },
    "vp9": {
        "video_file_type": "webm",
        "video_fps": 30,
        "frame_width": 1280,
        "frame_height": 720,
        "video_bitrate": "1000k",
        "codec_name": "libvpx-vp9",
        "pix_fmt": "yuv420p",
        "extra_ffmpeg_args": ["-deadline", "good", "-cpu-used", "0"],
    },
    "mp4v": {
        "video_file_type": "mp4",
        "video_fps": 15,
        "frame_width": 256,
        "frame_height": 256,
        "video_crf": 20,
        "codec_name": "mpeg4",
        "pix_fmt": "yuv420p",
        "extra_ffmpeg_args": ["-qscale:v", "5"],
    },
}


class RetrievalConfig(_Section):
    cache_size: int = Field(default=100, ge=0, description="Decoded frames kept in memory")
    max_workers: int = Field(default=4, ge=1, description="Concurrent frame decodes")


class EmbeddingConfig(_Section):
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimension: int | None = Field(default=384, gt=0)
    device: str = "cpu"
    normalize: bool = True
    batch_size: int = Field(default=32, ge=1)


class IndexConfig(_Section):
    path: str = Field(default="videomem_index", description="Base path of the index snapshot")
    metric: Literal["cosine", "l2", "ip"] | None = "cosine"
    max_elements: int = Field(default=10000, ge=1, description="Capacity hint")
    m: int = Field(default=16, ge=2, description="HNSW connectivity")
    ef_construction: int = Field(default=200, ge=1)
    ef_search: int = Field(default=100, ge=1)


class LLMConfig(_Section):
    default_models: dict[str, str] = Field(default_factory=lambda: {"openai": "gpt-4o-mini"})
    api_key_env_vars: dict[str, str] = Field(
        default_factory=lambda: {"openai": "OPENAI_API_KEY"}
    )
    base_url_env_var: str = "OPENAI_BASE_URL"
    max_context_tokens: int = Field(default=2000, ge=0, description="Context budget in characters")
    max_tokens: int = Field(default=1024, ge=1)
    temperature: float = Field(default=0.7, ge=0)


class ChatConfig(_Section):
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    context_chunks_per_query: int = Field(default=3, ge=1)
    max_history_length: int = Field(default=6, ge=0)


class QRConfig(_Section):
    version: int | None = Field(default=None, ge=1, le=40)
    error_correction: Literal["L", "M", "Q", "H"] = "M"
    box_size: int = Field(default=5, ge=1, description="Pixels per module")
    border: int = Field(default=4, ge=0, description="Quiet zone in modules")
    fill_color: str = "#000000"
    back_color: str = "#FFFFFF"


class PerformanceConfig(_Section):
    prefetch_frames: int = Field(default=10, ge=0)
    # Advisory only; no core operation enforces it.
    async_operation_timeout: float = Field(default=30.0, gt=0)


class FFmpegConfig(_Section):
    path: str = "ffmpeg"
    timeout: float = Field(default=3600.0, gt=0)


class VideomemConfig(_Section):
    """Complete configuration for encoder, retriever and chat."""

    chunk_size: int = 1024
    overlap: int = 32
    codec: str = "h264"
    codec_parameters: dict[str, CodecConfig] = Field(
        default_factory=lambda: {
            name: CodecConfig(**params) for name, params in DEFAULT_CODEC_PARAMETERS.items()
        }
    )
    temp_dir: str = "videomem_temp"
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    qr: QRConfig = Field(default_factory=QRConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    ffmpeg: FFmpegConfig = Field(default_factory=FFmpegConfig)


ConfigLike = VideomemConfig | Mapping[str, Any] | None


# ============================================================
# Resolution
# ============================================================


def _deep_merge(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``overrides`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_config(overrides: ConfigLike = None) -> VideomemConfig:
    """
    Resolve a complete configuration from partial overrides.

    Args:
        overrides: A full config model, a (possibly nested, partial) mapping of
            overrides, or None for defaults

    Returns:
        Validated VideomemConfig

    Raises:
        ConfigurationError: If an override names an unknown option or has an
            invalid value
    """
    if overrides is None:
        return VideomemConfig()
    if isinstance(overrides, VideomemConfig):
        return overrides.model_copy(deep=True)

    merged = _deep_merge(VideomemConfig().model_dump(), overrides)
    try:
        return VideomemConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(config_path: Path | str | None = None) -> VideomemConfig:
    """
    Load configuration from a YAML file.

    Without an explicit path, ``videomem.yaml`` in the current directory is
    used when present; otherwise defaults are returned.
    """
    logger = get_component_logger("config")

    if config_path is None:
        candidate = Path("videomem.yaml")
        if not candidate.exists():
            logger.debug("No videomem.yaml found, using defaults")
            return resolve_config()
        config_path = candidate

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file must contain a mapping: {config_path}")

    logger.info(f"Loaded config from: {config_path}")
    return resolve_config(data)


def get_codec_parameters(config: VideomemConfig, codec_name: str | None = None) -> CodecConfig:
    """
    Look up a codec preset.

    Args:
        config: Resolved configuration
        codec_name: Preset name (default: ``config.codec``)

    Returns:
        CodecConfig for the preset

    Raises:
        ConfigurationError: If the preset is not defined
    """
    name = codec_name or config.codec
    params = config.codec_parameters.get(name)
    if params is None:
        raise ConfigurationError(
            f"Unknown codec preset: {name}. Valid: {sorted(config.codec_parameters)}"
        )
    return params
