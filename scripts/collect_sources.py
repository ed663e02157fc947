"""Collect source files from a local directory as a batch optimization payload.

Applies the same directory and filename filters the batch endpoint enforces,
then either prints the payload as JSON or submits it.

Run from repo root:
    python -m scripts.collect_sources ./my-project
    python -m scripts.collect_sources ./my-project --submit --token "$TOKEN"
"""

import argparse
import asyncio
import json
import sys

import httpx

from optimizecode.core.logging import configure_structlog
from optimizecode.domain.ingestion import (
    MAX_ENTRIES,
    MAX_FILE_SIZE,
    MAX_FILES,
    IngestionResult,
    collect_source_files,
)

OPTIMIZATION_TYPES = ("performance", "readability", "security", "best_practices")


def build_payload(result: IngestionResult, optimization_type: str) -> dict:
    return {
        "files": [f.model_dump(include={"name", "path", "content", "size", "extension"}) for f in result.files],
        "optimization_type": optimization_type,
    }


async def submit_batch(base_url: str, token: str, payload: dict, timeout: float = 300.0) -> httpx.Response:
    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        return await client.post(
            "/api/optimize/batch",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("root", help="Directory to scan")
    parser.add_argument("--type", dest="optimization_type", choices=OPTIMIZATION_TYPES, default="performance")
    parser.add_argument("--max-files", type=int, default=MAX_FILES)
    parser.add_argument("--max-file-size", type=int, default=MAX_FILE_SIZE, help="bytes")
    parser.add_argument("--max-entries", type=int, default=MAX_ENTRIES)
    parser.add_argument("--submit", action="store_true", help="POST the batch instead of printing it")
    parser.add_argument("--api-url", default="http://localhost:8000")
    parser.add_argument("--token", default="demo-token")
    parser.add_argument("-v", "--verbose", action="store_true", help="log walk details to stderr")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_structlog(log_level="DEBUG" if args.verbose else "WARNING", json_logs=False, stream="ext://sys.stderr")
    result = collect_source_files(
        args.root,
        max_files=args.max_files,
        max_file_size=args.max_file_size,
        max_entries=args.max_entries,
    )
    print(
        f"Collected {len(result.files)} source file(s), visited {result.entries_visited} entries"
        + (" (truncated)" if result.truncated else ""),
        file=sys.stderr,
    )
    for reason, count in sorted(result.skipped.items()):
        print(f"  skipped {count} ({reason})", file=sys.stderr)

    if not result.files:
        print("No source files found.", file=sys.stderr)
        return 1

    payload = build_payload(result, args.optimization_type)
    if not args.submit:
        print(json.dumps(payload, indent=2))
        return 0

    response = await submit_batch(args.api_url, args.token, payload)
    print(json.dumps(response.json(), indent=2))
    return 0 if response.is_success else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
