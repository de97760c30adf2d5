"""Command-line interface for BTC Fee Tracker."""

import sys
import json
import time
import argparse
from typing import Any, Dict, List, Tuple
from .config import Config
from .runner import FeeTrackerRunner
from .badge import fee_status_message, format_time_ago
from .constants import PRIORITY_DESCRIPTIONS
from .logging import setup_logging, get_logger

logger = get_logger(__name__)


def parse_assignment(text: str) -> Tuple[str, Any]:
    """
    Parse a KEY=VALUE setting from the command line.

    Values are decoded as JSON when possible (true, 25, null), otherwise
    kept as strings, so "selectedPriority=hourFee" and "alertThreshold=12"
    both work.
    """
    if "=" not in text:
        raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {text!r}")
    key, raw = text.split("=", 1)
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return key.strip(), value


def build_status(runner: FeeTrackerRunner) -> Dict:
    """Collect cached fees, freshness and live chain info for --status."""
    settings = runner.store.get_settings()
    now = time.time()
    snapshot = runner.store.get_cached_snapshot(now)
    status = {
        "settings": settings.to_record(),
        "cache_valid": snapshot is not None,
        "last_update": format_time_ago(settings.last_update, now),
    }
    if snapshot is not None:
        selected = snapshot.value_for(settings.selected_priority)
        status["fees"] = snapshot.to_dict()
        status["selected"] = {
            "priority": settings.selected_priority,
            "label": PRIORITY_DESCRIPTIONS[settings.selected_priority],
            "value": selected,
            "message": fee_status_message(selected),
        }

    height = runner.fee_client.fetch_block_height()
    status["block_height"] = height.data.height if height.success else None
    fee_range = runner.fee_client.fetch_next_block_fee_range()
    status["next_block_fee_range"] = (
        {"min": fee_range.data.min, "max": fee_range.data.max} if fee_range.success else None
    )
    return status


def main(argv: List[str] = None):
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Track Bitcoin fee rates, keep a fee badge current and "
                    "alert when fees drop below a threshold."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: search for config.yaml)"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one update cycle then exit (cron-friendly)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Verbose output (debug logging, indented JSON)"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print cached fees, block height and next block fee range"
    )
    parser.add_argument(
        "--set",
        dest="assignments",
        type=parse_assignment,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Update a setting, e.g. alertThreshold=8 or badgeVisible=false (repeatable)"
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear stored settings and cached data"
    )
    parser.add_argument(
        "--test-notification",
        action="store_true",
        help="Send a test notification through the configured sink"
    )

    args = parser.parse_args(argv)

    try:
        config = Config(args.config)
    except FileNotFoundError as e:
        # Initialize basic logging before setup_logging for error reporting
        import logging
        logging.basicConfig(level=logging.ERROR, format='[%(levelname)s] %(message)s')
        logger.error(f"Config file not found: {e}")
        sys.exit(1)
    except Exception as e:
        import logging
        logging.basicConfig(level=logging.ERROR, format='[%(levelname)s] %(message)s')
        logger.error(f"Error loading config: {e}")
        sys.exit(1)

    setup_logging(config, verbose=args.verbose)
    runner = FeeTrackerRunner(config)
    indent = 2 if args.verbose else None

    if args.reset:
        if not runner.store.reset():
            sys.exit(1)
        print("Settings cleared")
        return

    if args.assignments:
        ok = True
        for key, value in args.assignments:
            if runner.store.update_field(key, value):
                print(f"{key} = {json.dumps(value)}")
            else:
                print(f"Error: could not set {key}", file=sys.stderr)
                ok = False
        if not ok:
            sys.exit(1)
        return

    if args.test_notification:
        if not runner.alert_manager.send_test_notification():
            sys.exit(1)
        print("Test notification sent")
        return

    if args.status:
        print(json.dumps(build_status(runner), indent=indent))
        return

    if args.once:
        result = runner.run_once()
        print(json.dumps(result, indent=indent))
        logger.debug(f"One-shot run completed: {json.dumps(result)}")
        if not result["success"]:
            sys.exit(1)
        return

    runner.run_continuous()


if __name__ == "__main__":
    main()
