"""
Show the outbound fee rate towards every channel peer and optionally set a
new fee rate on all channels with selected peers.

Usage:
    lnd-fees                                       # report only
    lnd-fees --to ACINQ --to 03abcd --set-fee-rate 250
    lnd-fees --to 02...66hex --set-fee-rate 100 --set-cltv-delta 80 --dry-run

Settings are read from config.ini in the parent directory (see
config.ini.example), e.g. lncli path, retry interval and Amboss token.
"""

import argparse
import sys

from .adjust_fees import adjust_fees
from .amboss import AmbossClient
from .config import fee_settings, load_config, setup_logging
from .display import render_fee_table, render_updates_table
from .errors import RoutingFeesError
from .lnd import LndNode


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="View and adjust outbound routing fees of LND channels."
    )
    parser.add_argument(
        "--to",
        action="append",
        default=[],
        metavar="PEER",
        help="Peer alias, alias fragment, public key prefix or public key. Repeatable.",
    )
    parser.add_argument(
        "--set-fee-rate",
        type=int,
        dest="fee_rate",
        metavar="PPM",
        help="Fee rate in parts per million to set towards the --to peers.",
    )
    parser.add_argument(
        "--set-cltv-delta",
        type=int,
        dest="cltv_delta",
        metavar="BLOCKS",
        help="CLTV delta to set instead of keeping the current one.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the planned policy updates without applying them.",
    )
    parser.add_argument("--config", help="Path to config.ini")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to stderr.",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config = load_config(args.config)
    logger = setup_logging(config, debug=args.debug)
    settings = fee_settings(config)

    try:
        result = adjust_fees(
            node=LndNode.from_config(config, settings),
            logger=logger,
            to=args.to,
            fee_rate=args.fee_rate,
            cltv_delta=args.cltv_delta,
            dry_run=args.dry_run,
            amboss=AmbossClient.from_config(config),
            retry_interval=settings["retry_interval"],
            retry_times=settings["retry_times"],
            max_workers=settings["max_workers"],
        )
    except RoutingFeesError as e:
        logger.error(f"Adjusting fees failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.dry_run and result["updates"]:
        print("\n--- Planned policy updates (dry run) ---")
        print(render_updates_table(result["updates"]))

    print(render_fee_table(result["peers"]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
