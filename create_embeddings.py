#!/usr/bin/env python3
"""
create_embeddings.py – build the chatbot's embeddings cache.

Usage:
    python create_embeddings.py
    python create_embeddings.py --docs-dir static/docs --cache embeddings_cache.json
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(__file__))

import config
from src.documents import DocumentStore, save_cache
from src.embeddings import create_document_embeddings
from src.loaders import load_documents_from_folder


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Chunk and embed the SeverusBot document corpus")
    p.add_argument("--docs-dir", default=config.RAG_DOCS_DIR, help="Folder with PDF / DOCX / TXT / MD sources")
    p.add_argument("--cache", default=config.EMBEDDINGS_CACHE, help="Output embeddings cache (JSON)")
    p.add_argument("--chunk-size", type=int, default=config.CHUNK_MAX_CHARS, help="Maximum characters per chunk")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    print("🚀 Generating document embeddings")
    docs = load_documents_from_folder(args.docs_dir)
    if not docs:
        print(f"❌ No documents found in {args.docs_dir}")
        return 1

    embedded = create_document_embeddings(docs, chunk_size=args.chunk_size)
    save_cache(embedded, args.cache)

    stats = DocumentStore(args.cache).stats()
    print("\n📊 Statistics:")
    print(f"   Documents: {stats['totalDocuments']}")
    print(f"   Chunks:    {stats['totalChunks']}")
    print(f"   Embedded:  {sum(1 for d in embedded if d.has_embedding())}")
    for category, count in stats["categories"].items():
        print(f"   {category}: {count}")
    print(f"✅ Embeddings saved → {args.cache}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
