"""
Conversational access to a video memory.

Each user turn retrieves context chunks from the Retriever. Without an LLM
client the context itself is the reply; with one, the context is injected
into the user message and the conversation is forwarded to the model.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterator

from videomem.config import ConfigLike, resolve_config
from videomem.llm import LLMClient
from videomem.logging_utils import get_component_logger
from videomem.retriever import DECODE_ERROR, NOT_READABLE, Retriever
from videomem.schema import ChatMessage, StreamDelta

NO_CONTEXT_MESSAGE = "No relevant context found in the video for your query."
CONTEXT_HEADER = "Context from video:\n"


class ChatSession:
    """
    Chat over a video memory with bounded history.

    Usage:
        session = ChatSession(retriever, llm_client=LLMClient("openai"))
        session.start_session()
        reply = session.chat("What does the paper say about delta?")
        for delta in session.chat("And gamma?", stream=True):
            print(delta.content or "", end="")
    """

    def __init__(
        self,
        retriever: Retriever,
        config: ConfigLike = None,
        llm_client: LLMClient | None = None,
        *,
        logger: logging.Logger | None = None,
    ):
        self.retriever = retriever
        self.config = resolve_config(config)
        self.llm_client = llm_client
        self.logger = get_component_logger("chat", logger)

        self.system_prompt = self.config.chat.system_prompt
        self.session_id: str | None = None
        self._history: list[ChatMessage] = []

        if llm_client is None:
            self.logger.warning("No LLM client provided, chat runs in context-only mode")

    # ============================================================
    # Session
    # ============================================================

    def start_session(self, system_prompt: str | None = None, session_id: str | None = None) -> str:
        """Clear history and start a new session; returns the session id."""
        self.clear_history()
        self.system_prompt = system_prompt or self.config.chat.system_prompt
        self.session_id = session_id or f"session_{datetime.now():%Y%m%d_%H%M%S}"
        self.logger.info(f"Chat session started: {self.session_id}")
        return self.session_id

    def get_history(self) -> list[ChatMessage]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []

    def _trim_history(self) -> None:
        limit = self.config.chat.max_history_length
        limit -= limit % 2
        self._history = self._history[-limit:] if limit > 0 else []

    def _record_turn(self, message: str, reply: str) -> None:
        self._history.append(ChatMessage(role="user", content=message))
        self._history.append(ChatMessage(role="assistant", content=reply))
        self._trim_history()

    # ============================================================
    # Context
    # ============================================================

    def _get_context(self, query: str) -> str:
        """Concatenate retrieved chunks within the character budget, whole chunks only."""
        budget = self.config.llm.max_context_tokens
        chunks = self.retriever.search(query, self.config.chat.context_chunks_per_query)

        selected: list[str] = []
        for chunk in chunks:
            if chunk in (NOT_READABLE, DECODE_ERROR):
                continue
            if len("\n\n".join(selected + [chunk])) > budget:
                self.logger.info(f"Context truncated at {len(selected)} chunks ({budget} chars)")
                break
            selected.append(chunk)

        return "\n\n".join(selected)

    def _build_messages(self, message: str, context: str) -> list[ChatMessage]:
        if context:
            content = f"{CONTEXT_HEADER}{context}\n\nUser Question: {message}"
        else:
            content = message
        return [
            ChatMessage(role="system", content=self.system_prompt),
            *self._history,
            ChatMessage(role="user", content=content),
        ]

    # ============================================================
    # Chat
    # ============================================================

    def chat(self, message: str, stream: bool = False) -> str | Iterator[StreamDelta]:
        """
        Answer one user message.

        Args:
            message: User message
            stream: Return an iterator of StreamDelta instead of the full text

        Returns:
            Reply text, or an iterator of deltas when streaming. A streamed
            reply is added to history once the iterator is exhausted.
        """
        context = self._get_context(message)

        if self.llm_client is None:
            reply = f"{CONTEXT_HEADER}{context}" if context else NO_CONTEXT_MESSAGE
            if stream:
                return iter([StreamDelta(role="assistant", content=reply, is_final=True)])
            return reply

        messages = self._build_messages(message, context)
        if stream:
            return self._stream_reply(message, messages)

        response = self.llm_client.chat(
            messages,
            temperature=self.config.llm.temperature,
            max_tokens=self.config.llm.max_tokens,
        )
        self._record_turn(message, response.content)
        return response.content

    def _stream_reply(self, message: str, messages: list[ChatMessage]) -> Iterator[StreamDelta]:
        parts: list[str] = []
        for delta in self.llm_client.chat_stream(
            messages,
            temperature=self.config.llm.temperature,
            max_tokens=self.config.llm.max_tokens,
        ):
            if delta.content:
                parts.append(delta.content)
            yield delta
        self._record_turn(message, "".join(parts))
