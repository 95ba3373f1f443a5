"""
Bulk-ingest every text file under a directory through the encrypted pipeline.

Usage:
    python scripts/ingest_directory.py ./records --pattern "*.txt"

Each file becomes one document whose id is the file's relative path (with
separators replaced). Configuration is read from the environment / .env,
exactly as the server reads it.
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from secure_rag_server.api.dependencies import get_orchestrator
from secure_rag_server.core.errors import SecureRAGError
from secure_rag_server.rag.models import Document


def _document_id(root: Path, path: Path) -> str:
    return str(path.relative_to(root)).replace(os.sep, "__")


async def main(root: Path, pattern: str) -> int:
    print("Initializing pipeline...")
    orchestrator = get_orchestrator()

    files = sorted(p for p in root.rglob(pattern) if p.is_file())
    print(f"Found {len(files)} files.")

    failures = 0
    total_chunks = 0

    for i, path in enumerate(files):
        doc_id = _document_id(root, path)
        print(f"Ingesting ({i+1}/{len(files)}): {doc_id}")

        content = path.read_text(encoding="utf-8")
        if not content.strip():
            print("  skipped: empty file")
            continue

        try:
            ids = await orchestrator.ingest_document(
                Document(id=doc_id, content=content, metadata={"source_path": str(path)})
            )
        except SecureRAGError as e:
            # One bad file should not stop the run; report it and move on.
            failures += 1
            print(f"  failed: {type(e).__name__}")
            continue

        total_chunks += len(ids)
        print(f"  stored {len(ids)} encrypted chunks")

    print(f"Done. {total_chunks} chunks stored, {failures} failures.")
    return 1 if failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("root", type=Path, help="Directory to ingest")
    parser.add_argument("--pattern", default="*.txt", help="Glob pattern (default: *.txt)")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.root, args.pattern)))
