"""
Application bootstrap: configuration, logging, signals and the pipeline run.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .crawler.fetcher import FetchEngine
from .crawler.pipeline import RangePipeline
from .storage.range_store import RangeStore
from .tracker.client import TrackerClient
from .utils.config import Config, load_config
from .utils.logger import setup_logging
from .utils.monitoring import initialize_monitoring


class BffGraphApp:
    """Main application class for the friend graph crawler."""

    def __init__(self):
        self.pipeline: Optional[RangePipeline] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """SIGINT/SIGTERM finish the active ranges, then exit."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, finishing active ranges before exit...")
            loop.call_soon_threadsafe(self._shutdown_event.set)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def run(self, config: Config) -> int:
        """Run the crawler until shutdown; return the process exit status."""
        self._shutdown_event = asyncio.Event()
        setup_logging(config.logging)
        self.setup_signal_handlers()

        self.logger.info("=== FRIEND GRAPH CRAWLER STARTING ===")
        self.logger.info(f"Max concurrency: {config.fetch.max_concurrency}")
        self.logger.info(f"Pipeline depth: {config.pipeline.depth}")
        self.logger.info(f"Tracker: {config.tracker.base_url}")
        self.logger.info("Press Ctrl-C to finish the current ranges and exit.")

        monitor = initialize_monitoring(
            config.monitoring.metrics_enabled, config.monitoring.prometheus_port
        )

        try:
            async with FetchEngine(
                url_template=config.fetch.url_template,
                user_agent=config.fetch.user_agent,
                max_concurrency=config.fetch.max_concurrency,
                request_timeout=config.fetch.request_timeout
            ) as engine, TrackerClient(
                config.tracker.base_url, config.tracker.request_timeout
            ) as tracker:
                self.pipeline = RangePipeline(
                    config, engine, tracker,
                    RangeStore(config.storage.data_directory),
                    self._shutdown_event,
                    monitor=monitor
                )
                await self.pipeline.run()

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            self.logger.info(f"Summary: {monitor.get_summary()}")
            self.logger.info("=== FRIEND GRAPH CRAWLER FINISHED ===")

        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Friend graph crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                            # Run with default config.yaml
  python main.py --config my_config.yaml    # Run with custom config
  python main.py --max-concurrency 20       # Go slower
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--max-concurrency',
        type=int,
        help='Maximum number of concurrent requests (overrides the config file)'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Friend Graph Crawler {__version__}'
    )

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return 1

    try:
        config = load_config(args.config)
    except (ValueError, TypeError) as e:
        print(f"Error: invalid configuration: {e}")
        return 1

    if args.max_concurrency is not None:
        if args.max_concurrency < 1:
            print("Error: --max-concurrency must be at least 1")
            return 1
        config.fetch.max_concurrency = args.max_concurrency

    app = BffGraphApp()
    try:
        return asyncio.run(app.run(config))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
