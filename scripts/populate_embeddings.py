#!/usr/bin/env python3
"""
Backfill embeddings for every message that does not have one yet.

Usage:
    python scripts/populate_embeddings.py
    python scripts/populate_embeddings.py --batch-size 20 --pause 2
"""

import argparse
import sys
import time
from pathlib import Path

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from app.db import SessionLocal, init_db
from app.embeddings import build_services


def main():
    parser = argparse.ArgumentParser(
        description="Generate embeddings for messages that are missing them"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=10,
        help="Messages per batch"
    )
    parser.add_argument(
        "--pause",
        type=float,
        default=1.0,
        help="Seconds to wait between batches"
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        default=0,
        help="Stop after this many batches (0 = until done)"
    )
    args = parser.parse_args()

    init_db()
    services = build_services(SessionLocal, autostart_queue=False)
    pipeline = services.pipeline

    print("Embedding Population")
    print("=" * 50)

    initial = pipeline.get_stats()
    print(f"Initial stats: {initial.model_dump()}")

    if initial.total_messages == 0:
        print("No messages found in database. Create some chats first.")
        return

    total_processed = 0
    batch_count = 0
    try:
        while True:
            batch_count += 1
            processed = pipeline.process_missing_batch(args.batch_size)
            total_processed += processed
            print(f"Batch {batch_count}: processed {processed} messages")

            # Batches of only blank/failing messages also come back as 0
            if processed == 0:
                print("No more messages to process.")
                break
            if args.max_batches and batch_count >= args.max_batches:
                print(f"Reached --max-batches={args.max_batches}, stopping.")
                break

            time.sleep(args.pause)
    except Exception as e:
        print(f"Population failed: {e}")
        sys.exit(1)

    final = pipeline.get_stats()
    print()
    print("=== Final Results ===")
    print(f"  Total messages processed: {total_processed}")
    print(f"  Messages with embeddings: {final.messages_with_embeddings}/{final.total_messages}")
    print(f"  Coverage: {final.coverage}%")


if __name__ == "__main__":
    main()
