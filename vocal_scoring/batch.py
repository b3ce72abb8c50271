"""
Batch scoring: score several attempt recordings against one reference.
Uses threading for parallel processing (4 concurrent attempts by default).

    python -m vocal_scoring.batch reference.wav attempt1.wav attempt2.wav --reverse
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from vocal_scoring.config import LOG_FORMAT, LOG_LEVEL, SAMPLE_RATE, StaticPresetSource
from vocal_scoring.orchestrator import ScoringOrchestrator
from vocal_scoring.presets import ChallengeType, Difficulty
from vocal_scoring.processing import load_audio

logger = logging.getLogger(__name__)

MAX_WORKERS = 4


def score_file(idx, total, orchestrator, reference, attempt_path, args):
    """Score one attempt file. Returns (path, result dict or None)."""
    label = f"[{idx+1}/{total}] {Path(attempt_path).name}"
    try:
        attempt = load_audio(attempt_path, args.sample_rate)
    except Exception as e:
        print(f"  FAIL {label} -> {e}", flush=True)
        return attempt_path, None

    result = orchestrator.score(
        reference,
        attempt,
        args.sample_rate,
        difficulty=args.difficulty,
        direction=ChallengeType.REVERSE if args.reverse else ChallengeType.FORWARD,
    )
    mode = result.vocal_analysis.mode.value if result.vocal_analysis else "?"
    garbage = " GARBAGE" if result.is_garbage else ""
    print(f"  OK  {label} -> {result.score:3d} ({mode}){garbage}  {result.feedback[0]}", flush=True)
    return attempt_path, result.to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Score vocal attempts against a reference recording.")
    parser.add_argument("reference", help="Reference audio file")
    parser.add_argument("attempts", nargs="+", help="Attempt audio files")
    parser.add_argument(
        "--difficulty",
        type=Difficulty,
        choices=list(Difficulty),
        default=Difficulty.NORMAL,
        metavar="{easy,normal,hard}",
        help="easy, normal or hard (default: normal)",
    )
    parser.add_argument("--reverse", action="store_true", help="Score as a reverse challenge")
    parser.add_argument("--workers", type=int, default=MAX_WORKERS)
    parser.add_argument("--sample-rate", type=int, default=SAMPLE_RATE)
    parser.add_argument("--json", action="store_true", help="Print full results as JSON")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    orchestrator = ScoringOrchestrator.create()
    asyncio.run(orchestrator.initialize(StaticPresetSource(args.difficulty)))

    try:
        reference = load_audio(args.reference, args.sample_rate)
    except Exception as e:
        print(f"ERROR: cannot load reference {args.reference}: {e}")
        return 1

    total = len(args.attempts)
    print(f"Scoring {total} attempts against {args.reference} ({args.difficulty.value})")
    print(f"Using {args.workers} concurrent workers")

    results = {}
    failed = 0
    start = time.time()

    with ThreadPoolExecutor(max_workers=args.workers) as executor:
        futures = [
            executor.submit(score_file, i, total, orchestrator, reference, path, args)
            for i, path in enumerate(args.attempts)
        ]
        for future in as_completed(futures):
            path, result = future.result()
            if result is None:
                failed += 1
            else:
                results[path] = result

    elapsed = time.time() - start
    if args.json:
        print(json.dumps(results, indent=2, ensure_ascii=False))

    print(f"\n{'='*60}")
    print(f"BATCH COMPLETE in {elapsed:.0f}s")
    print(f"  {len(results)} scored, {failed} failed out of {total}")
    if results:
        avg = sum(r["score"] for r in results.values()) / len(results)
        print(f"  average score: {avg:.1f}")
    print(f"{'='*60}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
