"""
Document Store – embedded corpus records, cache file IO and the in-memory store.

The store holds an immutable tuple of documents. refresh() builds a new tuple
and swaps the reference, so readers never see a half-loaded corpus.
"""

import json
import os
import threading
from dataclasses import dataclass, field
from typing import Optional

CHUNK_MARKER = "_chunk_"


@dataclass
class Document:
    id: str
    content: str
    metadata: dict = field(default_factory=dict)   # title, source, category, date?
    embedding: Optional[list] = None

    @property
    def title(self) -> str:
        return self.metadata.get("title", self.id)

    @property
    def source_id(self) -> str:
        """Id of the source file a chunk was cut from."""
        return self.id.split(CHUNK_MARKER)[0]

    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def to_dict(self) -> dict:
        data = {"id": self.id, "content": self.content, "metadata": self.metadata}
        if self.embedding is not None:
            data["embedding"] = list(self.embedding)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        return cls(
            id=data["id"],
            content=data.get("content", ""),
            metadata=dict(data.get("metadata") or {}),
            embedding=data.get("embedding"),
        )


@dataclass
class SearchResult:
    document: Document
    similarity: float


# ── Cache file ──────────────────────────────────────────────────────────────

def load_cache(path: str) -> list[Document]:
    """Read the embeddings cache; a missing or unreadable file yields []."""
    if not os.path.exists(path):
        print(f"[RAG] ⚠ Embeddings cache not found: {path} (run create_embeddings.py)")
        return []
    try:
        with open(path, encoding="utf-8") as f:
            records = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"[RAG] ❌ Could not read embeddings cache {path}: {e}")
        return []
    docs = [Document.from_dict(r) for r in records]
    print(f"[RAG] Cache loaded: {len(docs)} chunks from {path}")
    return docs


def save_cache(documents: list[Document], path: str) -> str:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump([d.to_dict() for d in documents], f, ensure_ascii=False)
    os.replace(tmp_path, path)
    print(f"[RAG] Cache saved: {len(documents)} chunks → {path}")
    return path


# ── Store ───────────────────────────────────────────────────────────────────

class DocumentStore:
    """Process-wide, read-mostly view of the embedded corpus."""

    def __init__(self, cache_path: str):
        self.cache_path = cache_path
        self._documents = None
        self._load_lock = threading.Lock()

    def documents(self) -> tuple:
        docs = self._documents
        if docs is None:
            with self._load_lock:
                if self._documents is None:
                    self._documents = tuple(load_cache(self.cache_path))
                docs = self._documents
        return docs

    def refresh(self) -> tuple:
        """Reload the cache file and swap the whole collection."""
        docs = tuple(load_cache(self.cache_path))
        self._documents = docs
        return docs

    def stats(self) -> dict:
        docs = self.documents()
        categories = {}
        for doc in docs:
            category = doc.metadata.get("category", "")
            categories[category] = categories.get(category, 0) + 1
        return {
            "totalDocuments": len({d.source_id for d in docs}),
            "totalChunks": len(docs),
            "categories": categories,
            "hasEmbeddings": any(d.has_embedding() for d in docs),
        }

    def readiness(self) -> dict:
        stats = self.stats()
        if stats["totalChunks"] == 0:
            return {
                "ready": False,
                "message": "No embedded documents found. Run: python create_embeddings.py",
                "stats": None,
            }
        if not stats["hasEmbeddings"]:
            return {
                "ready": False,
                "message": "Documents loaded without embeddings. Run: python create_embeddings.py",
                "stats": None,
            }
        return {
            "ready": True,
            "message": (
                f"System ready with {stats['totalChunks']} chunks "
                f"from {stats['totalDocuments']} documents"
            ),
            "stats": stats,
        }
