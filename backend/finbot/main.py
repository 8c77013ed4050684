"""
FinBot Backend Worker

This is the entry point for FinBot's data-to-analytics pipeline. It wires the
quote service, news service and insight engine into the ingestion worker and
runs it on the refresh interval.

What happens every cycle:
- News is pulled from the curated RSS feeds and deduplicated
- Market quotes are fetched and scored into a summary
- Event cards, a market insight and alerts are generated (with OpenAI when
  OPENAI_API_KEY is set, basic fallback analysis otherwise)

How to run it:
    # Run the worker forever
    python -m finbot.main

    # Run a single cycle and print the resulting state
    python -m finbot.main --once
"""

import asyncio
import json
import logging
import sys

from .config import config
from .services.insight_engine import InsightEngine
from .services.news_service import NewsService
from .services.quote_service import QuoteService
from .workers.ingestion import IngestionWorker

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_worker() -> IngestionWorker:
    """Build the worker with services configured from the environment"""
    return IngestionWorker(
        news_service=NewsService(),
        quote_service=QuoteService(),
        insight_engine=InsightEngine.from_config(),
    )


async def run_once() -> dict:
    worker = create_worker()
    try:
        report = await worker.run_cycle()
        state = worker.get_state().to_dict()
        state['report'] = report.to_dict() if report else None
        return state
    finally:
        await worker.close()


async def run_forever() -> None:
    worker = create_worker()
    try:
        await worker.start()
    finally:
        await worker.close()


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    try:
        if '--once' in argv:
            state = asyncio.run(run_once())
            print(json.dumps(state, indent=2))
        else:
            asyncio.run(run_forever())
    except KeyboardInterrupt:
        logger.info("Worker received interrupt, shutting down...")
    return 0


if __name__ == '__main__':
    sys.exit(main())
