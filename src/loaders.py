"""
Loaders Module – read PDF, DOCX and plain-text sources into Documents.
"""

import os
import re
from datetime import date

import config
from src.documents import Document

SUPPORTED_EXTENSIONS = (".pdf", ".docx", ".txt", ".md")


def read_pdf(path: str) -> str:
    from pypdf import PdfReader

    reader = PdfReader(path)
    return "\n\n".join(page.extract_text() or "" for page in reader.pages)


def read_docx(path: str) -> str:
    import docx

    return "\n\n".join(p.text for p in docx.Document(path).paragraphs)


def read_text(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


READERS = {
    ".pdf": read_pdf,
    ".docx": read_docx,
    ".txt": read_text,
    ".md": read_text,
}


def clean_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def load_documents_from_folder(folder: str = config.RAG_DOCS_DIR) -> list[Document]:
    """One Document per readable, non-empty source file, sorted by name."""
    if not os.path.isdir(folder):
        print(f"[RAG] ❌ Folder not found: {folder}")
        return []

    today = date.today().isoformat()
    docs = []
    for name in sorted(os.listdir(folder)):
        stem, ext = os.path.splitext(name)
        reader = READERS.get(ext.lower())
        if reader is None:
            print(f"[RAG] ⚠ Unsupported file type, skipped: {name}")
            continue

        try:
            text = clean_text(reader(os.path.join(folder, name)))
        except Exception as e:
            print(f"[RAG] ❌ Could not read {name}: {e}")
            continue
        if not text:
            print(f"[RAG] ⚠ Empty document, skipped: {name}")
            continue

        docs.append(Document(
            id=name,
            content=text,
            metadata={
                "title": stem,
                "source": config.DOC_SOURCE,
                "date": today,
                "category": config.DOC_CATEGORY,
            },
        ))
        print(f"[RAG] 📄 {name} ({len(text)} chars)")

    print(f"[RAG] {len(docs)} documents loaded from {folder}")
    return docs
