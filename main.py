import argparse
import dataclasses
import logging

from ferrywatch.config import load_settings, load_watch_config
from ferrywatch.domain import ConfigError
from ferrywatch.worker import TickOutcome, run_forever, run_tick


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="ferrywatch: ferry trip watcher")
    parser.add_argument("--once", action="store_true", help="Run single tick and exit")
    parser.add_argument("--config", help="Path to config.yaml (overrides CONFIG_FILE)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    _setup_logging(args.verbose)
    log = logging.getLogger(__name__)

    try:
        settings = load_settings()
        if args.config:
            settings = dataclasses.replace(settings, config_file=args.config)
        # Fail fast on a broken config; ticks reload it and keep this as the fallback.
        config = load_watch_config(settings.config_file, smtp_password=settings.smtp_password)
    except ConfigError as e:
        log.error("Invalid configuration (%s)", e)
        return 2

    if args.once:
        result = run_tick(settings, fallback_mail=config.mail)
        return 1 if result.outcome is TickOutcome.FAILED else 0

    try:
        run_forever(settings, config)
    except KeyboardInterrupt:
        log.info("Interrupted, exiting")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
