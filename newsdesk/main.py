#!/usr/bin/env python3
import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional, TextIO

from dotenv import load_dotenv

from newsdesk.models.article import Article
from newsdesk.pipeline.orchestrator import NewsPipeline
from newsdesk.utils.config_loader import AppConfig, load_config
from newsdesk.utils.error_monitoring import ConfigurationError
from newsdesk.utils.logging_config import StageTimer, setup_logging


class ConsoleDigest:
    """Delivery collaborator: renders the final article list to a stream."""

    def __init__(self, stream: Optional[TextIO] = None, as_json: bool = False):
        self.stream = stream or sys.stdout
        self.as_json = as_json

    def deliver(self, articles: List[Article]) -> None:
        if self.as_json:
            json.dump([a.to_dict() for a in articles], self.stream, indent=2, ensure_ascii=False)
            self.stream.write("\n")
            return

        if not articles:
            self.stream.write("No relevant news today.\n")
            return

        self.stream.write(f"📰 {len(articles)} relevant articles\n\n")
        for index, article in enumerate(articles, 1):
            meta = article.relevance
            self.stream.write(f"{index}. {article.title}\n")
            self.stream.write(f"   {article.source}")
            if meta:
                self.stream.write(f" · {meta.age} · score {meta.score:.2f} ({meta.reasoning})")
            self.stream.write(f"\n   {article.link}\n")
            if article.description:
                self.stream.write(f"   {article.description}\n")
            self.stream.write("\n")


def parse_keywords(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    keywords = [k.strip() for k in value.split(",") if k.strip()]
    return keywords or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Newsdesk relevance pipeline")
    parser.add_argument('--config', help='Path to the YAML configuration file')
    parser.add_argument('--keywords', help='Comma-separated keywords (default: tier-1 keywords)')
    parser.add_argument('--once', action='store_true', help='Run the pipeline once (default)')
    parser.add_argument('--health', action='store_true', help='Validate sources and show circuit status')
    parser.add_argument('--json', action='store_true', help='Emit JSON instead of a text digest')
    parser.add_argument('--log-level', default=None, help='Log level (default: LOG_LEVEL or INFO)')
    return parser


async def run_once(config: AppConfig, keywords: Optional[List[str]], digest: ConsoleDigest) -> int:
    async with NewsPipeline(config) as pipeline:
        with StageTimer("pipeline run", logging.getLogger(__name__)):
            result = await pipeline.run(keywords)
        digest.deliver(result.articles)
        failed = [o for o in result.outcomes if o.status == "failed"]
        distribution = result.distribution.distribution if result.distribution else {}
        logging.getLogger(__name__).info(
            f"📊 Distribution: {distribution} "
            f"({len(failed)} failed sources)"
        )
    return 0


async def run_health(config: AppConfig, as_json: bool) -> int:
    pipeline = NewsPipeline(config)
    try:
        report = pipeline.health_report()
    finally:
        await pipeline.close()

    if as_json:
        print(json.dumps(report, indent=2, default=str))
        return 0

    configured = {s.id for s in config.sources}
    loaded = {s["id"] for s in report["sources"]}
    print("Source Health Status:")
    for source in config.sources:
        status = '✅' if source.id in loaded else '❌'
        print(f"  {source.id} ({source.kind.value}): {status}")
    for source_id, stats in report["circuits"].items():
        print(f"  circuit {source_id}: {stats['state']} ({stats['failure_rate_percent']}% failures)")
    return 0 if loaded or not configured else 1


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    load_dotenv()
    args = build_parser().parse_args(argv)

    log_level = args.log_level or os.getenv('LOG_LEVEL', 'INFO')
    setup_logging(
        log_level=log_level,
        log_dir=os.getenv('LOG_DIR', 'logs'),
        enable_file_logging=bool(os.getenv('LOG_DIR')),
        enable_structured_logging=os.getenv('LOG_FORMAT', '').lower() == 'json',
        # --json output owns stdout
        console_stream=sys.stderr if args.json else sys.stdout,
    )
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(f"❌ Configuration error: {e}")
        return 2

    try:
        if args.health:
            return await run_health(config, args.json)
        keywords = parse_keywords(args.keywords)
        return await run_once(config, keywords, ConsoleDigest(as_json=args.json))
    except ConfigurationError as e:
        logger.error(f"❌ Configuration error: {e}")
        return 2
    except KeyboardInterrupt:
        logger.warning("⚠️ Shutting down gracefully...")
        return 130


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
