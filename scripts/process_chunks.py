"""Run one chunking batch from the command line and print the summary as JSON."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Sequence

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from editorial.app.core.config import ConfigurationError, PipelineConfig, get_settings
from editorial.app.core.db import session_scope
from editorial.app.ingest.pipeline import run_chunking

logger = logging.getLogger("editorial.scripts.process_chunks")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("article_ids", nargs="*", type=uuid.UUID, help="explicit article ids")
    parser.add_argument("--limit", type=int, default=None, help="batch size without explicit ids")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for a single chunking run."""

    logging.basicConfig(level=logging.INFO)
    args = _parse_args(argv)

    try:
        config = PipelineConfig.from_settings(get_settings())
    except ConfigurationError as exc:
        logger.error("Chunking run aborted: %s", exc)
        return 1

    with session_scope() as session:
        batch = run_chunking(
            session,
            config,
            article_ids=args.article_ids or None,
            limit=args.limit,
        )

    print(json.dumps(batch.to_payload(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
