"""Main entry point module.

Handles CLI arguments, thread lifecycle, signal handling, and clean shutdown.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import Any, List, Optional

import config as config_module
import reporter
from scheduler import Scheduler
from tick_source import TickSource


logger = logging.getLogger(__name__)

DEFAULT_URL = "http://worldtimeapi.org/api/timezone/America/Los_Angeles"
DEFAULT_JSON_FILTER = {"datetime": ".*T[0-9]+:[0-9]+"}
DEFAULT_SECONDS = 60
DEFAULT_INTERVAL_SECONDS = 1.0
DEFAULT_HEARTBEAT_PERIOD = 10
DEFAULT_TIMEOUT_SECONDS = 1.0


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list, defaults to sys.argv[1:]
    """
    parser = argparse.ArgumentParser(
        description=(
            "Probe a URL repeatedly, reporting any change in server responses."
        )
    )
    parser.add_argument(
        "url",
        nargs="?",
        default=None,
        help=f"URL to probe (default: {DEFAULT_URL})",
    )
    parser.add_argument("--config", help="Path to configuration YAML file")
    parser.add_argument(
        "-s",
        "--seconds",
        type=float,
        default=DEFAULT_SECONDS,
        help="Terminate after SECONDS; 0 repeats indefinitely (default: 60)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL_SECONDS,
        help="Probe every INTERVAL seconds (default: 1)",
    )
    parser.add_argument(
        "-hp",
        "--heartbeat-period",
        type=int,
        default=DEFAULT_HEARTBEAT_PERIOD,
        help="Log a heartbeat every PERIOD unchanged probes; 0 disables (default: 10)",
    )
    parser.add_argument(
        "-jf",
        "--json-filter",
        help="Normalize the JSON body with an inline filter, e.g. \"{datetime: '.*T[0-9]+'}\"",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help="Request timeout in seconds (default: 1)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _options_overridden_by_config(args: argparse.Namespace) -> List[str]:
    defaults = {
        "url": None,
        "json_filter": None,
        "seconds": DEFAULT_SECONDS,
        "interval": DEFAULT_INTERVAL_SECONDS,
        "heartbeat_period": DEFAULT_HEARTBEAT_PERIOD,
        "timeout": DEFAULT_TIMEOUT_SECONDS,
    }
    return [name for name, default in defaults.items() if getattr(args, name) != default]


def config_from_args(args: argparse.Namespace) -> config_module.Config:
    """Build the configuration from a config file or the CLI values.

    Raises:
        ConfigError: If the configuration is invalid
    """
    if args.config:
        ignored = _options_overridden_by_config(args)
        if ignored:
            logger.warning(
                f"Ignoring {', '.join(ignored)}: settings are read from {args.config}"
            )
        return config_module.load_config(args.config)

    json_filter = config_module.parse_json_filter(args.json_filter)
    url = args.url
    if url is None:
        url = DEFAULT_URL
        if json_filter is None:
            json_filter = dict(DEFAULT_JSON_FILTER)

    return config_module.build_config(
        url,
        interval_seconds=args.interval,
        timeout_seconds=args.timeout,
        duration_seconds=args.seconds,
        heartbeat_period=args.heartbeat_period,
        json_filter=json_filter,
    )


def build_scheduler(cfg: config_module.Config, tick_source: TickSource, client: Any = None) -> Scheduler:
    """Create a scheduler with every configured target registered."""
    scheduler = Scheduler(
        tick_source,
        period=cfg.monitor.interval_seconds,
        client=client,
        timeout_seconds=cfg.monitor.timeout_seconds,
    )
    for target in cfg.targets:
        scheduler.register(
            target.url,
            json_filter=target.json_filter,
            expect_json=target.expect_json,
        )
    return scheduler


def run_with_restart(
    target_func: Any, shutdown_event: threading.Event, thread_name: str, *args: Any
) -> None:
    """Run a function with automatic restart on exception.

    Catches any unhandled exception, logs it, waits 30 seconds (checking
    shutdown_event during wait), then restarts the function.

    Args:
        target_func: The function to run
        shutdown_event: Event to signal shutdown
        thread_name: Name of the thread for logging
        *args: Arguments to pass to the function
    """
    while not shutdown_event.is_set():
        try:
            target_func(*args)
        except Exception:
            logger.exception(
                f"Unhandled exception in {thread_name}, waiting to restart..."
            )

            # Wait 30 seconds before restart, checking shutdown_event
            if shutdown_event.wait(timeout=30):
                break

            # Try again if not shutting down
            logger.info(f"Restarting {thread_name}...")


def wait_for_shutdown(shutdown_event: threading.Event, duration_seconds: float) -> None:
    """Block until shutdown is requested or duration_seconds elapse.

    A duration of 0 waits until shutdown is requested.
    """
    if duration_seconds > 0:
        shutdown_event.wait(timeout=duration_seconds)
        return

    logger.info("Waiting indefinitely...")
    while not shutdown_event.wait(timeout=30):
        logger.debug("Heartbeat: monitor running")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for clean shutdown)
    """
    args = parse_args(argv)

    # Setup logging
    log_level = logging.DEBUG if args.debug else logging.INFO
    setup_logging(log_level)

    try:
        cfg = config_from_args(args)
    except config_module.ConfigError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return 1

    tick_source = TickSource()
    scheduler = build_scheduler(cfg, tick_source)
    reporter_instance = reporter.Reporter(cfg, scheduler)

    # Create shutdown event
    shutdown_event = threading.Event()

    # Setup signal handlers
    def handle_signal(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    reporter_thread = threading.Thread(
        target=run_with_restart,
        args=(reporter_instance.run, shutdown_event, "reporter", shutdown_event),
        name="reporter",
        daemon=True,
    )

    scheduler.start()
    reporter_thread.start()
    logger.info(f"Started {reporter_thread.name} thread")

    try:
        wait_for_shutdown(shutdown_event, cfg.monitor.duration_seconds)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    shutdown_event.set()

    # Shutdown
    logger.info("Shutting down...")
    scheduler.stop()

    reporter_thread.join(timeout=10)
    if reporter_thread.is_alive():
        logger.warning(f"Thread {reporter_thread.name} did not stop within timeout")

    scheduler.close()
    tick_source.disarm_all()

    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
