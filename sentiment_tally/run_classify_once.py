from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from sentiment_tally.service import build_context
from sentiment_tally.settings import load_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Classify one text and count it in the configured bucket.")
    parser.add_argument("text", help="text to classify")
    parser.add_argument("--command", default="sentiment")
    args = parser.parse_args(argv)

    s = load_settings()
    ctx = build_context(s)

    outcome = asyncio.run(ctx.handle({"command": args.command, "text": args.text}))
    logger.info("Outcome: state=%s trail=%s", outcome.state.value, [st.value for st in outcome.trail])

    print(json.dumps(outcome.to_body(), ensure_ascii=False, indent=2))
    if outcome.document is not None:
        counts = {r.label.value: r.count for r in outcome.document.records()}
        print(json.dumps({"counts": counts}, ensure_ascii=False, indent=2))
    return 0 if outcome.ok else 1


if __name__ == "__main__":
    sys.exit(main())
