#!/usr/bin/env python3
"""Embed the book's markdown chapters and load them into Qdrant.

Every embedding goes through the same governor the API uses, so a large
ingest run respects the provider's rate window and quota backoff.
"""

import argparse
import asyncio
import logging
import re
from pathlib import Path
from typing import Any
from uuid import NAMESPACE_URL, uuid5

from bookgate.config.settings import Settings, get_settings
from bookgate.core.logging import configure_logging
from bookgate.governor.governor import OutboundCallGovernor
from bookgate.providers.openrouter import OpenRouterProvider
from bookgate.rag.vectorstore import BookVectorStore

logger = logging.getLogger("bookgate.ingest")

SUPPORTED_EXTENSIONS = {".md", ".mdx", ".txt"}
HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)
FRONT_MATTER_RE = re.compile(r"\A---\s*\n.*?\n---\s*\n", re.DOTALL)


def chunk_text(text: str, chunk_size_words: int, overlap_words: int) -> list[str]:
    if chunk_size_words < 1:
        raise ValueError("chunk_size_words must be >= 1")
    words = text.split()
    chunks: list[str] = []
    step = max(chunk_size_words - overlap_words, 1)
    for start in range(0, len(words), step):
        chunk = " ".join(words[start : start + chunk_size_words])
        if chunk:
            chunks.append(chunk)
        if start + chunk_size_words >= len(words):
            break
    return chunks


def section_title(text: str, fallback: str) -> str:
    match = HEADING_RE.search(text)
    return match.group(1).strip() if match else fallback


def build_records(
    docs_dir: Path,
    chunk_size_words: int = 200,
    overlap_words: int = 30,
) -> list[dict[str, Any]]:
    files = sorted(
        path for path in docs_dir.rglob("*") if path.suffix.lower() in SUPPORTED_EXTENSIONS
    )
    records: list[dict[str, Any]] = []
    for path in files:
        relative = path.relative_to(docs_dir)
        raw = FRONT_MATTER_RE.sub("", path.read_text(encoding="utf-8"), count=1)
        chapter = relative.parts[0] if len(relative.parts) > 1 else relative.stem
        section = section_title(raw, fallback=relative.stem)
        for idx, piece in enumerate(chunk_text(raw, chunk_size_words, overlap_words)):
            chunk_key = f"{relative.as_posix()}#{idx}"
            records.append(
                {
                    "id": str(uuid5(NAMESPACE_URL, chunk_key)),
                    "text": piece,
                    "metadata": {
                        "chapter": chapter,
                        "section": section,
                        "source": relative.as_posix(),
                        "chunk": str(idx),
                    },
                }
            )
    return records


async def ingest_records(
    records: list[dict[str, Any]],
    governor: OutboundCallGovernor,
    store: BookVectorStore,
) -> int:
    await store.ensure_collection()
    for record in records:
        vector = await governor.embed(record["text"])
        await store.upsert(record["id"], vector, record["text"], record["metadata"])
    logger.info("ingest_completed", extra={"documents": len(records)})
    return len(records)


def _build_runtime(settings: Settings) -> tuple[OutboundCallGovernor, BookVectorStore]:
    if not settings.openrouter_api_key:
        raise SystemExit("BOOKGATE_OPENROUTER_API_KEY is required for ingestion")
    if not settings.qdrant_url:
        raise SystemExit("BOOKGATE_QDRANT_URL is required for ingestion")
    provider = OpenRouterProvider(
        base_url=settings.openrouter_base_url,
        api_key=settings.openrouter_api_key,
        timeout_s=settings.provider_timeout_s,
        http_referer=settings.openrouter_http_referer,
        app_title=settings.openrouter_app_title,
    )
    store = BookVectorStore(
        url=settings.qdrant_url,
        api_key=settings.qdrant_api_key,
        collection=settings.qdrant_collection,
        vector_size=settings.qdrant_vector_size,
    )
    return OutboundCallGovernor.from_settings(settings, provider), store


def main() -> None:
    parser = argparse.ArgumentParser(description="Embed book docs into the Qdrant collection")
    parser.add_argument("--docs-dir", default="docs", help="Directory with .md/.mdx/.txt chapters")
    parser.add_argument("--chunk-size-words", type=int, default=200)
    parser.add_argument("--overlap-words", type=int, default=30)
    parser.add_argument(
        "--dry-run", action="store_true", help="Only report how many chunks would be sent"
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level)
    records = build_records(
        Path(args.docs_dir),
        chunk_size_words=args.chunk_size_words,
        overlap_words=args.overlap_words,
    )
    if args.dry_run:
        print(f"{len(records)} chunks from {args.docs_dir}")
        return

    governor, store = _build_runtime(settings)

    async def _run() -> int:
        try:
            return await ingest_records(records, governor, store)
        finally:
            await store.close()

    count = asyncio.run(_run())
    print(f"Upserted {count} chunks into {settings.qdrant_collection}")


if __name__ == "__main__":
    main()
