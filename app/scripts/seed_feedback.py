"""
Seed Sample Feedback
====================

CLI script that submits a handful of realistic feedback items and, unless
--no-process is given, runs the analysis pipeline for each one inline.

Usage:
    python -m app.scripts.seed_feedback
    python -m app.scripts.seed_feedback --no-process
"""

import argparse
import asyncio
import sys

from app.config import settings
from app.core.database import init_db
from app.core.errors import FeedbackIntelError
from app.core.errors.registry import error_registry
from app.core.structured_logging import setup_logging
from app.services.feedback_service import get_feedback_service
from app.services.inference_service import get_inference_provider
from app.services.pipeline_service import get_feedback_pipeline

SAMPLE_FEEDBACK = [
    {
        "text": "Login has been broken for 3 days, our users are unable to access their accounts!",
        "source": "email",
    },
    {
        "text": "The new dark mode feature is amazing! Makes it so much easier on the eyes.",
        "source": "discord",
    },
    {
        "text": "Dashboard loads very slowly, sometimes takes 30+ seconds. Performance is terrible.",
        "source": "github-issue",
    },
    {
        "text": "Documentation for the API is outdated and missing examples. Please update it.",
        "source": "twitter",
    },
    {
        "text": "Great customer support team! They resolved my issue in under 2 hours.",
        "source": "support-ticket",
    },
]


async def seed(process: bool = True) -> int:
    """Submit the sample items. Returns the number of items accepted."""
    service = get_feedback_service()
    pipeline = get_feedback_pipeline() if process else None

    accepted = 0
    for sample in SAMPLE_FEEDBACK:
        try:
            item = service.submit(sample["text"], sample["source"])
        except FeedbackIntelError as e:
            print(f"  FAIL: {sample['source']}: {e.code}: {e.detail}", file=sys.stderr)
            continue
        accepted += 1
        status = item.status
        if pipeline is not None:
            status = await pipeline.process(item.id, item.blob_key)
        print(f"  OK: {item.id} [{item.source}] -> {status}")
    return accepted


def main() -> None:
    parser = argparse.ArgumentParser(description="Submit sample feedback items")
    parser.add_argument(
        "--no-process",
        action="store_true",
        help="Only store the items (leave them PROCESSING)",
    )
    args = parser.parse_args()

    setup_logging(settings.log_directory)
    error_registry.load()
    init_db()

    if not args.no_process:
        loaded = get_inference_provider().preload()
        print(f"Models ready: {', '.join(loaded)}")

    accepted = asyncio.run(seed(process=not args.no_process))
    print(f"\nDone. {accepted}/{len(SAMPLE_FEEDBACK)} item(s) submitted.")
    if accepted < len(SAMPLE_FEEDBACK):
        sys.exit(1)


if __name__ == "__main__":
    main()
