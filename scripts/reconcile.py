"""Run a single reconciliation pass from the command line.

    python -m scripts.reconcile            # human readable summary
    python -m scripts.reconcile --json     # summary as JSON

Exit status is 1 when any invoice failed to reconcile.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys

from api.container import build_container
from core.logging_config import get_logger


logger = get_logger(__name__)


async def _run_once():
    container = build_container()
    try:
        return await container.reconciliation_service.run_pass()
    finally:
        await container.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile non-terminal invoices with the processor")
    parser.add_argument("--json", action="store_true", help="print the summary as JSON")
    args = parser.parse_args(argv)

    summary = asyncio.run(_run_once())
    if args.json:
        print(json.dumps(summary.model_dump(mode="json"), indent=2))
    else:
        print(
            f"total={summary.total} updated={summary.updated} expired={summary.expired} "
            f"unchanged={summary.unchanged} errors={summary.errors}"
        )
        for failure in summary.failures:
            print(f"  {failure.invoice_id}: {failure.error}")
    return 1 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
