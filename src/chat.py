"""
Chat Module – retrieval-augmented replies through the OpenRouter API.

Flow: latest user message → document search (bounded by a timeout) →
system prompt with the retrieved context → chat completion with bounded
retries. Every failure path ends in a reply string, never an exception.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass

import requests

import config
from src.embeddings import search_similar_documents

# Shared so a timed-out search does not block the request on shutdown
_retrieval_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="rag-search")


@dataclass
class ChatReply:
    reply: str
    context: str    # config.CONTEXT_FOUND / CONTEXT_NONE / CONTEXT_UNAVAILABLE

    def to_dict(self) -> dict:
        return {"reply": self.reply, "context": self.context}


def validate_messages(messages) -> list[dict]:
    """A non-empty list of {role, content} dicts ending with a user turn."""
    if not isinstance(messages, list) or not messages:
        raise ValueError("messages must be a non-empty list")
    for message in messages:
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise ValueError("each message needs a string 'content'")
        if message.get("role") not in ("user", "assistant", "system"):
            raise ValueError(f"invalid message role: {message.get('role')!r}")
    if messages[-1]["role"] != "user":
        raise ValueError("the last message must come from the user")
    return [{"role": m["role"], "content": m["content"]} for m in messages]


def format_search_results(results) -> str:
    relevant = [r for r in results if r.similarity > config.CHAT_MIN_SIMILARITY][:config.CHAT_TOP_K]
    return "\n\n---\n\n".join(
        f"[Fonte: {r.document.title}]\n{r.document.content[:config.CHAT_CHUNK_CHARS]}..."
        for r in relevant
    )


def build_system_message(context: str) -> dict:
    content = config.CHAT_POLICY
    if context:
        content = f"{content}\n\nCONTEXTO:\n{context[:config.CHAT_CONTEXT_CHARS]}"
    return {"role": "system", "content": content}


def request_completion(
    messages: list[dict],
    max_attempts: int = config.CHAT_MAX_ATTEMPTS,
    backoff: tuple = config.CHAT_BACKOFF_S,
    timeout: float = config.COMPLETION_TIMEOUT_S,
    sleep=time.sleep,
) -> str:
    """
    POST the conversation to the completion endpoint.

    Up to `max_attempts` tries, sleeping backoff[i] seconds before try i + 2
    (the last backoff value repeats). Returns config.CHAT_APOLOGY when every
    attempt fails.
    """
    if not config.OPENROUTER_API_KEY:
        print("[CHAT] ❌ OPENROUTER_API_KEY is not set")
        return config.CHAT_APOLOGY

    headers = {
        "Authorization": f"Bearer {config.OPENROUTER_API_KEY}",
        "Content-Type": "application/json",
        "HTTP-Referer": config.APP_URL,
        "X-Title": config.APP_TITLE,
    }
    payload = {
        "model": config.OPENROUTER_MODEL,
        "messages": messages,
        "temperature": config.CHAT_TEMPERATURE,
        "max_tokens": config.CHAT_MAX_TOKENS,
    }

    for attempt in range(1, max_attempts + 1):
        if attempt > 1 and backoff:
            sleep(backoff[min(attempt - 2, len(backoff) - 1)])
        try:
            response = requests.post(config.OPENROUTER_URL, json=payload, headers=headers, timeout=timeout)
            response.raise_for_status()
            choices = response.json().get("choices") or []
        except (requests.RequestException, ValueError) as e:
            print(f"[CHAT] Attempt {attempt}/{max_attempts} failed: {e}")
            continue

        content = choices[0].get("message", {}).get("content") if choices else None
        return content or config.CHAT_EMPTY_REPLY

    print("[CHAT] ❌ All completion attempts failed, returning apology")
    return config.CHAT_APOLOGY


class ChatOrchestrator:
    """Answers a conversation using the document store as grounding context."""

    def __init__(
        self,
        store,
        embedder=None,
        complete=request_completion,
        retrieval_timeout: float = config.RETRIEVAL_TIMEOUT_S,
    ):
        self.store = store
        self.embedder = embedder
        self.complete = complete
        self.retrieval_timeout = retrieval_timeout

    def _search(self, query: str):
        return search_similar_documents(
            query,
            self.store.documents(),
            top_k=config.CHAT_TOP_K,
            min_similarity=config.CHAT_MIN_SIMILARITY,
            embedder=self.embedder,
        )

    def retrieve_context(self, query: str) -> tuple[str, str]:
        """(context text, status); degrades to no context on timeout or error."""
        future = _retrieval_pool.submit(self._search, query)
        try:
            results = future.result(timeout=self.retrieval_timeout)
        except FutureTimeout:
            future.cancel()
            print(f"[CHAT] ⚠ Retrieval timed out after {self.retrieval_timeout}s")
            return "", config.CONTEXT_UNAVAILABLE
        except Exception as e:
            print(f"[CHAT] ⚠ Retrieval failed: {e}")
            return "", config.CONTEXT_UNAVAILABLE

        context = format_search_results(results)
        return context, config.CONTEXT_FOUND if context else config.CONTEXT_NONE

    def answer(self, messages: list[dict]) -> ChatReply:
        messages = validate_messages(messages)
        context, status = self.retrieve_context(messages[-1]["content"])
        print(f"[CHAT] {status} ({len(context)} chars of context)")

        reply = self.complete([build_system_message(context), *messages])
        return ChatReply(reply=reply or config.CHAT_APOLOGY, context=status)
