"""
Command-line interface.

Usage:
    videomem encode notes.txt paper.pdf --video memory.mp4 --index memory_index
    videomem search "what is delta?" --video memory.mp4 --index memory_index -k 5
    videomem chat --video memory.mp4 --index memory_index --llm openai
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from videomem.config import VideomemConfig, load_config
from videomem.logging_utils import configure_logging, get_component_logger

logger = get_component_logger("cli")

TEXT_SUFFIXES = {".txt", ".md"}


# ============================================================
# Commands
# ============================================================


def cmd_encode(args: argparse.Namespace, config: VideomemConfig) -> int:
    from videomem.encoder import Encoder

    encoder = Encoder(config)
    for path in args.inputs:
        suffix = path.suffix.lower()
        if suffix == ".pdf":
            encoder.add_pdf(path)
        elif suffix == ".epub":
            encoder.add_epub(path)
        elif suffix in TEXT_SUFFIXES:
            encoder.add_text(path.read_text(encoding="utf-8"))
        else:
            logger.warning(f"Skipping unsupported input: {path}")

    stats = encoder.build_video(args.video, args.index, codec=args.codec, show_progress=True)
    print(
        f"Encoded {stats.frame_count} frames ({stats.indexed_count} indexed) "
        f"to {stats.video_path}, index {stats.index_path}"
    )
    return 0


def cmd_search(args: argparse.Namespace, config: VideomemConfig) -> int:
    from videomem.retriever import Retriever

    with Retriever(args.video, args.index, config) as retriever:
        hits = retriever.search_with_metadata(args.query, top_k=args.top_k)

    if not hits:
        print("No results.")
        return 0

    for i, hit in enumerate(hits, 1):
        print(f"\n[{i}] chunk {hit.chunk_id} (frame {hit.frame}, score {hit.score:.3f})")
        print(hit.text)
    return 0


def cmd_chat(args: argparse.Namespace, config: VideomemConfig) -> int:
    from videomem.chat import ChatSession
    from videomem.llm import LLMClient
    from videomem.retriever import Retriever

    llm_client = LLMClient(args.llm, config, model=args.model) if args.llm else None

    with Retriever(args.video, args.index, config) as retriever:
        session = ChatSession(retriever, config, llm_client)
        session.start_session()
        print("Chat started. Type 'exit' to quit.")

        while True:
            try:
                message = input("\nYou: ").strip()
            except EOFError:
                break
            if message.lower() in {"exit", "quit"}:
                break
            if not message:
                continue

            print("Assistant: ", end="", flush=True)
            for delta in session.chat(message, stream=True):
                print(delta.content or "", end="", flush=True)
            print()
    return 0


# ============================================================
# CLI
# ============================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="videomem",
        description="Store text as QR-code video frames and search it semantically",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="Path to videomem.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    sub = parser.add_subparsers(dest="command", required=True)

    encode = sub.add_parser("encode", help="Build a video memory from documents")
    encode.add_argument("inputs", nargs="+", type=Path, help="Text, PDF or EPUB files")
    encode.add_argument("--video", type=Path, required=True, help="Output video path")
    encode.add_argument("--index", type=Path, help="Index base path")
    encode.add_argument("--codec", type=str, help="Codec preset (h264, vp9, mp4v)")
    encode.set_defaults(func=cmd_encode)

    search = sub.add_parser("search", help="Search a video memory")
    search.add_argument("query", type=str, help="Search query")
    search.add_argument("--video", type=Path, required=True, help="Video path")
    search.add_argument("--index", type=Path, help="Index base path")
    search.add_argument("-k", "--top-k", type=int, default=5, help="Number of results")
    search.set_defaults(func=cmd_search)

    chat = sub.add_parser("chat", help="Chat with a video memory")
    chat.add_argument("--video", type=Path, required=True, help="Video path")
    chat.add_argument("--index", type=Path, help="Index base path")
    chat.add_argument("--llm", type=str, help="LLM provider (omit for context-only mode)")
    chat.add_argument("--model", type=str, help="Model name override")
    chat.set_defaults(func=cmd_chat)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(args.config)
        return args.func(args, config)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
