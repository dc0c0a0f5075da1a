"""
Create the MongoDB indexes the API queries rely on, or export the matching
Firestore index definitions.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lawyerzen.config import get_settings
from lawyerzen.indexes import ensure_mongo_indexes, firestore_index_config

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Ensure document store indexes")
    parser.add_argument(
        "--firestore-json",
        type=str,
        default=None,
        help="Write firestore.indexes.json to this path instead of touching MongoDB",
    )
    parser.add_argument(
        "--ttl-days",
        type=int,
        default=None,
        help="Override ACTIVITY_TTL_DAYS for the activity expiry index",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    if args.firestore_json:
        out = Path(args.firestore_json)
        out.write_text(json.dumps(firestore_index_config(), indent=2) + "\n", encoding="utf-8")
        logger.info("Wrote Firestore index config to %s", out)
        return 0

    from pymongo import MongoClient

    client = MongoClient(settings.mongodb_uri, serverSelectionTimeoutMS=5000)
    try:
        count = ensure_mongo_indexes(
            client[settings.mongodb_database],
            activity_ttl_days=args.ttl_days or settings.activity_ttl_days,
        )
    finally:
        client.close()
    print(f"Ensured {count} indexes on {settings.mongodb_database}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
