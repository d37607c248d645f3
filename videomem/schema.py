"""
Pydantic v2 models for videomem data structures.

These models cover what is persisted (index entries, frame payloads) and what
crosses component boundaries (search results, chat turns, build stats).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class IndexEntry(BaseModel):
    """Metadata for one indexed chunk. The text itself lives only in its frame."""

    model_config = ConfigDict(strict=True)

    id: int = Field(..., ge=0, description="Chunk id (label in the ANN graph)")
    frame: int = Field(..., ge=0, description="Frame number holding the chunk's QR code")
    length: int = Field(..., ge=0, description="Length of the original chunk text")


class SearchResult(BaseModel):
    """A nearest-neighbor hit joined with its index entry."""

    chunk_id: int = Field(..., ge=0)
    metadata: IndexEntry
    distance: float = Field(..., ge=0, description="Lower = more similar")


class FramePayload(BaseModel):
    """The JSON record encoded in each frame's QR code."""

    text: str
    frame: int = Field(..., ge=0)


class RetrievalHit(BaseModel):
    """A decoded search hit with a display score."""

    text: str
    score: float = Field(..., gt=0, le=1, description="1 / (1 + distance)")
    chunk_id: int
    frame: int
    metadata: IndexEntry


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class StreamDelta(BaseModel):
    """One increment of a streamed assistant reply."""

    role: Literal["assistant"] | None = None
    content: str | None = None
    is_final: bool = False


class BuildStats(BaseModel):
    """Summary of one Encoder.build_video call."""

    chunk_count: int = Field(..., ge=0, description="Chunks taken from the queue")
    frame_count: int = Field(..., ge=0, description="Frames written to the video")
    indexed_count: int = Field(..., ge=0, description="Entries added to the index")
    video_path: str
    index_path: str
    video_gen_seconds: float = Field(default=0.0, ge=0)
    index_build_seconds: float = Field(default=0.0, ge=0)
