#!/usr/bin/env python3
"""
Paper trading launcher script.

Runs the sniper with configs/paper.yaml in the paper profile: fills are
simulated against a virtual wallet while pool, price and account reads use
the configured RPC endpoint. Pass a JSON-lines file to replay recorded events
instead of waiting for live ones:

    python scripts/run_paper.py recordings/session.jsonl
"""

import asyncio
import sys

from sniper.runner.pipeline import main


if __name__ == "__main__":
    argv = ["amm-sniper", "--config", "configs/paper.yaml", "--profile", "paper"]
    if len(sys.argv) > 1:
        argv += ["--events", sys.argv[1]]
    sys.argv = argv

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nPaper trading stopped by user.")
        sys.exit(0)
