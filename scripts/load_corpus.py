"""
Bulk-load a JSONL corpus into the vector store.
Each line must be an object with "id" and "text" keys.
Run from repo root: python scripts/load_corpus.py corpus.jsonl
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from app.config import settings  # noqa: E402
from app.errors import VectorStoreError  # noqa: E402
from app.store.schema_setup import initialize_store  # noqa: E402
from app.store.writer import insert_batch  # noqa: E402

logger = logging.getLogger("load_corpus")


def read_items(path: Path) -> list[dict]:
    items = []
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                items.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise SystemExit(f"{path}:{lineno}: invalid JSON ({exc})")
    return items


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("corpus", type=Path, help="JSONL file of {id, text} objects")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.max_batch_size,
        help=f"items per transaction (max {settings.max_batch_size})",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    items = read_items(args.corpus)
    batch_size = max(1, min(args.batch_size, settings.max_batch_size))

    initialize_store()
    inserted = 0
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        try:
            result = insert_batch(batch)
        except VectorStoreError as exc:
            logger.error("Batch starting at item %d failed: %s (%s)", start, exc.message, exc.details)
            raise SystemExit(1)
        inserted += result.inserted

    print(f"Loaded {inserted} items into {settings.database_path}")


if __name__ == "__main__":
    main()
