"""
Embeddings Module – sentence embeddings, chunking and cosine-similarity search.

Search is brute force over the in-memory corpus (a few hundred vectors).
"""

import math
import re
import threading

import numpy as np

import config
from src.documents import CHUNK_MARKER, Document, SearchResult


def preprocess_text(text: str, max_chars: int = config.EMBED_MAX_CHARS) -> str:
    """Collapse whitespace and cut to the length the model is fed."""
    return " ".join(text.split())[:max_chars]


class Embedder:
    """Lazy wrapper around a sentence-transformers model, loaded once per instance."""

    def __init__(self, model_name: str = config.EMBEDDING_MODEL):
        self.model_name = model_name
        self._model = None
        self._load_lock = threading.Lock()

    @property
    def model(self):
        model = self._model
        if model is None:
            with self._load_lock:
                if self._model is None:
                    from sentence_transformers import SentenceTransformer

                    print(f"[EMB] Loading embedding model {self.model_name}...")
                    self._model = SentenceTransformer(self.model_name)
                    print("[EMB] ✅ Model loaded")
                model = self._model
        return model

    def embed(self, text: str) -> list[float]:
        vector = self.model.encode(preprocess_text(text), normalize_embeddings=True)
        return np.asarray(vector, dtype=float).tolist()


_default_embedder = None
_default_lock = threading.Lock()


def get_embedder() -> Embedder:
    global _default_embedder
    if _default_embedder is None:
        with _default_lock:
            if _default_embedder is None:
                _default_embedder = Embedder()
    return _default_embedder


# ── Similarity & search ─────────────────────────────────────────────────────

def cosine_similarity(a, b) -> float:
    """dot(a, b) / (|a|·|b|), NaN when either vector is all zeros."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return float("nan")
    return float(np.clip(np.dot(a, b) / norm, -1.0, 1.0))


def search_similar_documents(
    query: str,
    documents,
    top_k: int = 3,
    min_similarity: float = config.SEARCH_MIN_SIMILARITY,
    embedder=None,
) -> list[SearchResult]:
    """
    Top-k documents by cosine similarity to the query, best first.

    Documents without an embedding, with a different dimensionality, or
    with a zero vector never match.
    """
    if top_k <= 0:
        return []
    embedder = embedder or get_embedder()
    query_vec = np.asarray(embedder.embed(query), dtype=float)

    results = []
    for doc in documents:
        if not doc.has_embedding():
            continue
        if len(doc.embedding) != query_vec.shape[0]:
            print(f"[RAG] ⚠ Skipping {doc.id}: embedding size {len(doc.embedding)} != {query_vec.shape[0]}")
            continue
        similarity = cosine_similarity(query_vec, doc.embedding)
        if math.isnan(similarity) or similarity < min_similarity:
            continue
        results.append(SearchResult(document=doc, similarity=similarity))

    results.sort(key=lambda r: r.similarity, reverse=True)
    return results[:top_k]


# ── Chunking ────────────────────────────────────────────────────────────────

def _split_sentences(paragraph: str, max_chars: int) -> list[str]:
    """Pack whole sentences into pieces ≤ max_chars; hard-cut longer sentences."""
    sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+", paragraph) if s.strip()]
    pieces = []
    current = ""
    for sentence in sentences:
        while len(sentence) > max_chars:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(sentence[:max_chars])
            sentence = sentence[max_chars:].lstrip()
        if not sentence:
            continue
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= max_chars:
            current = candidate
        else:
            pieces.append(current)
            current = sentence
    if current:
        pieces.append(current)
    return pieces


def split_into_chunks(text: str, max_chars: int = config.CHUNK_MAX_CHARS) -> list[str]:
    """
    Split text into chunks of at most max_chars.

    Paragraphs (blank-line separated) are packed greedily; a paragraph that
    is too long on its own is broken at sentence ends first.
    """
    text = text.strip()
    if not text:
        return []
    if len(text) <= max_chars:
        return [text]

    chunks = []
    current = ""
    for paragraph in re.split(r"\n\s*\n", text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        pieces = [paragraph] if len(paragraph) <= max_chars else _split_sentences(paragraph, max_chars)
        for piece in pieces:
            candidate = f"{current}\n\n{piece}" if current else piece
            if len(candidate) <= max_chars:
                current = candidate
            else:
                if current:
                    chunks.append(current)
                current = piece
    if current:
        chunks.append(current)
    return chunks


def create_document_embeddings(
    documents: list[Document],
    embedder=None,
    chunk_size: int = config.CHUNK_MAX_CHARS,
) -> list[Document]:
    """
    Chunk and embed a corpus. A document that fits in one chunk keeps its id;
    otherwise chunks become `<id>_chunk_<i>` titled "<title> (Parte i+1)".
    A document whose embedding fails is kept with an empty embedding.
    """
    embedder = embedder or get_embedder()
    print(f"[EMB] Creating embeddings for {len(documents)} documents...")

    embedded = []
    for n, doc in enumerate(documents, start=1):
        chunks = split_into_chunks(doc.content, chunk_size)
        try:
            records = []
            for i, chunk in enumerate(chunks):
                single = len(chunks) == 1
                metadata = dict(doc.metadata)
                if not single:
                    metadata["title"] = f"{doc.title} (Parte {i + 1})"
                records.append(Document(
                    id=doc.id if single else f"{doc.id}{CHUNK_MARKER}{i}",
                    content=chunk,
                    metadata=metadata,
                    embedding=embedder.embed(chunk),
                ))
        except Exception as e:
            print(f"[EMB] ❌ Failed to embed {doc.id}: {e}")
            records = [Document(id=doc.id, content=doc.content, metadata=dict(doc.metadata), embedding=[])]
        embedded.extend(records)
        print(f"[EMB] ✅ [{n}/{len(documents)}] {doc.title} – {len(records)} chunk(s)")

    return embedded
