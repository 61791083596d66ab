#!/usr/bin/env python3
"""Backfill embeddings for messages that are not yet searchable.

Usage:
    python scripts/index_messages.py [--batch-size N] [--max-batches N]

Can be run as a cron job to catch messages whose indexing failed at send time:
    */15 * * * * cd /path/to/chatcmd && /path/to/venv/bin/python scripts/index_messages.py
"""

import asyncio
import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.adapters.semantic_search import SemanticSearchService
from chatcmd.infra.database import get_engine, dispose_engine


async def main():
    parser = argparse.ArgumentParser(description="Index message embeddings")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Messages embedded per API call (default: 100)",
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        default=0,
        help="Stop after this many batches (default: 0, run until done)",
    )
    args = parser.parse_args()

    search = SemanticSearchService(ConversationStore(get_engine()))
    total = 0
    batches = 0
    try:
        while True:
            indexed = await search.index_pending(batch_size=args.batch_size)
            total += indexed
            batches += 1
            if indexed == 0 or (args.max_batches and batches >= args.max_batches):
                break
    finally:
        dispose_engine()

    print(f"Indexed {total} messages in {batches} batch(es)")


if __name__ == "__main__":
    asyncio.run(main())
