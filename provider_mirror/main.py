import argparse
import logging
import re
import sys
import time
import traceback

import requests

# Project internal imports
from . import config
from .errors import ConfigError
from .fetcher import Fetcher
from .mirror import mirror_all
from .models import MirrorResult
from .registry import RegistryClient
from .settings import load_config
from .storage import create_blob_client, create_storage

# --- Logging Setup ---
# Place basicConfig here so logger instances in other modules inherit it
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - [%(threadName)s] %(message)s')
logger = logging.getLogger(__name__)

NOISY_LOGGERS = ("requests", "urllib3", "boto3", "botocore", "s3transfer")

_DURATION_PART = re.compile(r"(\d+)([hms])")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


def parse_duration(value: str) -> int:
    """Parses '6h', '30m', '90s', '1h30m' or a plain number of seconds into seconds."""
    text = str(value).strip().lower()
    if text.isdigit():
        return int(text)
    if not text or not re.fullmatch(r"(?:\d+[hms])+", text):
        raise argparse.ArgumentTypeError(f"Invalid duration: {value!r} (expected e.g. 6h, 30m, 90s)")
    return sum(int(amount) * _UNIT_SECONDS[unit] for amount, unit in _DURATION_PART.findall(text))


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"Must be at least 1: {value!r}")
    return number


def log_summary(results: list[MirrorResult]):
    logger.info("--- Mirror Summary ---")
    for result in results:
        line = (f"{result.reference}: {result.status.name} "
                f"(fetched {result.fetched}, failed {result.failed}, "
                f"{len(result.committed_versions)} versions in catalog)")
        if result.is_success:
            logger.info(line)
        else:
            logger.warning(f"{line} {result.error_message or ''}".rstrip())
    failures = sum(1 for r in results if not r.is_success)
    if failures:
        logger.warning(f"{failures} of {len(results)} providers did not mirror cleanly.")
    else:
        logger.info(f"All {len(results)} providers mirrored successfully.")
    logger.info("---")


def run_mirror_process(args) -> int:
    """Loads the configuration and runs one or more mirroring passes."""
    try:
        mirror_config = load_config(args.config_path)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    logger.info("Starting provider mirror process.")
    logger.info(f"Config file: {args.config_path}")
    logger.info(f"Providers: {', '.join(p.reference for p in mirror_config.providers) or '<none>'}")
    logger.info(f"Storage type: {mirror_config.destination.type.value}")
    logger.info(f"Fetch workers: {args.workers}")
    logger.info(f"Heal all invalid archives: {mirror_config.heal_all}")

    session = requests.Session()
    session.headers.update({'User-Agent': config.USER_AGENT})
    registry = RegistryClient(session, scheme=mirror_config.registry_scheme)
    # One blob client for the whole run, shared by every provider
    blob_client = create_blob_client(mirror_config.destination)

    def storage_factory(provider):
        return create_storage(mirror_config.destination, provider, blob_client=blob_client)

    def fetcher_factory(storage):
        return Fetcher(registry, storage, session)

    while True:
        results = mirror_all(
            mirror_config,
            registry,
            storage_factory,
            fetcher_factory,
            workers=args.workers,
            show_progress=not args.debug,
        )
        log_summary(results)

        if not args.loop:
            return 0
        logger.info(f"Waiting {args.wait_between_loops} seconds before the next pass...")
        time.sleep(args.wait_between_loops)


def main(argv=None):
    """Parses arguments and starts the mirror process."""
    parser = argparse.ArgumentParser(
        description="Mirror Terraform providers from a registry into a local or S3 network mirror.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter  # Show defaults in help
    )
    parser.add_argument("-c", "--config-path", default=config.DEFAULT_CONFIG_PATH, help="Path to the YAML config file.")
    parser.add_argument("--workers", type=positive_int, default=config.MAX_WORKERS, help="Concurrent fetches per provider.")
    parser.add_argument("--loop", action="store_true", help="Keep mirroring, waiting between passes.")
    parser.add_argument("--wait-between-loops", type=parse_duration, default=config.DEFAULT_WAIT_BETWEEN_LOOPS,
                        help="Wait between passes in loop mode (e.g. 6h, 30m, 90s or seconds).")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging (very verbose).")

    args = parser.parse_args(argv)

    # Adjust logging level based on debug flag
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug logging enabled.")
    else:
        logging.getLogger().setLevel(logging.INFO)
        # Silence verbose logs from underlying libraries in info mode
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    try:
        return run_mirror_process(args)
    except KeyboardInterrupt:
        logger.warning("Process interrupted by user.")
        return 1
    except Exception as e:
        logger.error(f"An unexpected critical error occurred: {e}")
        logger.error(traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
