#!/usr/bin/env python3
"""Create the conversation store tables.

Usage:
    python scripts/init_schema.py [--database-url URL]

Safe to run repeatedly; existing tables are left untouched.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.infra.config import config
from chatcmd.infra.database import build_engine


def main():
    parser = argparse.ArgumentParser(description="Create conversation store tables")
    parser.add_argument(
        "--database-url",
        default=config.DATABASE_URL,
        help="Database URL (default: DATABASE_URL from environment)",
    )
    args = parser.parse_args()

    engine = build_engine(args.database_url)
    try:
        ConversationStore(engine).init_schema()
    finally:
        engine.dispose()
    print("Schema ready")


if __name__ == "__main__":
    main()
