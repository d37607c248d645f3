"""
videomem - Video-encoded text memory

Stores text chunks as QR codes, one per video frame, and retrieves them
through an approximate-nearest-neighbor index over their embeddings.

Modules:
    - config: Pydantic configuration models and YAML loading
    - schema: Pydantic models for index entries, payloads and chat turns
    - io: Path helpers and atomic writes
    - chunk: Sentence-aware text chunking
    - embedding: Sentence-transformers embedding adapter
    - index: HNSW index (faiss) plus chunk metadata
    - qr: Frame payload codec and QR rendering/decoding
    - video: Stateful frame reader over a video file
    - ffmpeg_utils: Video assembly via ffmpeg
    - cache: LRU cache of decoded frames
    - retriever: Query -> frames -> decoded text
    - encoder: Text -> QR frames -> video + index
    - documents: PDF/EPUB text extraction
    - llm: OpenAI-compatible chat client
    - chat: Retrieval-grounded chat session
"""

__version__ = "0.1.0"
