"""
Recompute decayed aggregate profiles from stored observation episodes.
No LLM calls; reads completed episodes and rewrites SUBJECT_AGGREGATES.

Usage:
    python -m assessment_engine.scripts.recalculate_aggregates subj-1 subj-2
    python -m assessment_engine.scripts.recalculate_aggregates --all
    python -m assessment_engine.scripts.recalculate_aggregates --all --dry-run
"""

import sys
import logging
import argparse
from typing import List, Optional

logging.basicConfig(level=logging.INFO, format='%(asctime)s | %(levelname)-8s | %(message)s', datefmt='%H:%M:%S')
logger = logging.getLogger(__name__)


def recalculate(subject_ids: List[str], dry_run: bool = False, service=None) -> int:
    """
    Recompute aggregates for each subject.

    Returns:
        Number of subjects that failed
    """
    if service is None:
        from assessment_engine.core.dependencies import get_aggregate_service
        service = get_aggregate_service()

    failures = 0
    for subject_id in subject_ids:
        try:
            if dry_run:
                profile = service.build_profile(subject_id)
            else:
                profile = service.recompute(subject_id)
        except Exception as e:
            failures += 1
            logger.error(f"[{subject_id}] FAILED: {e}", exc_info=True)
            continue

        observed = {dim: score for dim, score in profile.scores.items() if score is not None}
        logger.info(f"[{subject_id}] episodes={profile.episode_count} observed={len(observed)}/{len(profile.scores)}")
        for dim, score in sorted(observed.items()):
            logger.info(f"    {dim:<28} {score:>5}")

    return failures


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Recompute decayed aggregate profiles")
    ap.add_argument("subjects", nargs="*", help="Subject IDs to recompute")
    ap.add_argument("--all", action="store_true", help="Every subject with a completed episode")
    ap.add_argument("--dry-run", action="store_true", help="Show scores without writing")
    args = ap.parse_args(argv)

    if args.all:
        from assessment_engine.core.dependencies import get_episode_repository
        subjects = get_episode_repository().list_subject_ids()
    else:
        subjects = args.subjects

    if not subjects:
        ap.error("give at least one subject ID or --all")

    logger.info(f"Recomputing {len(subjects)} subject(s){' (dry run)' if args.dry_run else ''}")
    failures = recalculate(subjects, dry_run=args.dry_run)
    logger.info(f"Done: {len(subjects) - failures} ok, {failures} failed")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
