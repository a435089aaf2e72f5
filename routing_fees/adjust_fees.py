"""
View and adjust outbound routing fees towards channel peers.

The run is a small dependency graph over lncli reads:

    get_channels, get_pending, get_public_key, get_fee_rates   (no deps)
    get_aliases, get_peers, get_policies                       (get_channels)
    update_fees                                                (all of the above)
    get_rates                                                  (update_fees)
    fees                                                       (aliases, peers, rates)

Reads are never retried, any failed read aborts the run. Fee updates are
retried one by one on a fixed interval. There is no rollback when one
channel finally fails after others were already updated.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta

import polling2

from .config import MAX_WORKERS, RETRY_INTERVAL_SECONDS, RETRY_TIMES
from .display import HEADER, NO_FEE, format_fee_rate, short_key
from .errors import InvalidArgument, NotFound, UpdateFailed
from .peers import find_key, get_aliases, uniq
from .tasks import run_task_graph

module_logger = logging.getLogger(__name__)


def as_tx_out(record):
    return f"{record['transaction_id']}:{record['transaction_vout']}"


def validate_arguments(node, logger, to, fee_rate=None, cltv_delta=None):
    if not node:
        raise InvalidArgument("Expected LND node to adjust fee rates", field="node")

    if not logger:
        raise InvalidArgument("Expected logger to adjust fee rates", field="logger")

    if not isinstance(to, (list, tuple)):
        raise InvalidArgument(
            "Expected list of peers to adjust fees towards", field="to"
        )

    if not all(isinstance(query, str) for query in to):
        raise InvalidArgument("Expected peer queries to be strings", field="to")

    if fee_rate is not None and (
        isinstance(fee_rate, bool) or not isinstance(fee_rate, int) or fee_rate < 0
    ):
        raise InvalidArgument(
            "Expected non-negative integer fee rate in ppm", field="fee_rate"
        )

    if cltv_delta is not None and (
        isinstance(cltv_delta, bool) or not isinstance(cltv_delta, int) or cltv_delta < 1
    ):
        raise InvalidArgument("Expected positive integer CLTV delta", field="cltv_delta")


def union_channels(channels, pending_channels):
    """Open and pending channels, one entry per channel point."""
    by_point = {}
    for channel in list(channels) + list(pending_channels):
        by_point.setdefault(as_tx_out(channel), channel)
    return list(by_point.values())


def get_policies(node, channels, max_workers=MAX_WORKERS):
    """Policies of every open channel, None where LND knows no edge yet."""

    def get_policy(channel):
        try:
            return node.get_channel(channel["id"])
        except NotFound:
            module_logger.debug(f"No policy known for channel {as_tx_out(channel)}")
            return None

    if not channels:
        return []
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(get_policy, channels))


def plan_fee_updates(
    fee_rate,
    own_public_key,
    peer_keys,
    channels,
    pending_channels,
    fee_rates,
    policies,
    cltv_delta=None,
):
    """Fee update records for every channel of every targeted peer.

    With a known policy of ours on any of the peer's channels, the peer's
    highest base fee and highest CLTV delta are carried over to all of its
    channels. Without one only the fee rate is set. An explicit cltv_delta
    always wins.
    """
    if fee_rate is None:
        return []

    all_channels = union_channels(channels, pending_channels)
    updates = []

    for key in uniq(k for k in peer_keys if k):
        peer_channels = [c for c in all_channels if c["partner_public_key"] == key]
        points = {as_tx_out(c) for c in peer_channels}

        peer_fee_rates = [rate for rate in fee_rates if as_tx_out(rate) in points]

        current_policies = []
        for policy in policies:
            if not policy or as_tx_out(policy) not in points:
                continue
            own = next(
                (p for p in policy["policies"] if p["public_key"] == own_public_key),
                None,
            )
            if own:
                current_policies.append(own)

        # Base fees are msat strings, int keeps them exact at any size
        base_fee_mtokens = max(
            (int(rate["base_fee_mtokens"]) for rate in peer_fee_rates), default=0
        )

        for channel in peer_channels:
            update = {
                "fee_rate": fee_rate,
                "transaction_id": channel["transaction_id"],
                "transaction_vout": channel["transaction_vout"],
            }
            if current_policies:
                update["base_fee_mtokens"] = str(base_fee_mtokens)
                update["cltv_delta"] = max(p["cltv_delta"] for p in current_policies)
            if cltv_delta is not None:
                update["cltv_delta"] = cltv_delta
            updates.append(update)

    return updates


def apply_fee_update(
    node,
    update,
    own_public_key,
    logger,
    retry_interval=RETRY_INTERVAL_SECONDS,
    retry_times=RETRY_TIMES,
):
    """Apply one update record, retrying on a fixed interval up to retry_times attempts."""

    def attempt():
        try:
            node.update_channel_fee(
                transaction_id=update["transaction_id"],
                transaction_vout=update["transaction_vout"],
                fee_rate=update["fee_rate"],
                from_public_key=own_public_key,
                base_fee_mtokens=update.get("base_fee_mtokens"),
                cltv_delta=update.get("cltv_delta"),
            )
        except UpdateFailed as e:
            logger.error(e)
            next_retry = datetime.now() + timedelta(seconds=retry_interval)
            logger.info(f"next_retry: {next_retry.strftime('%Y-%m-%d %H:%M:%S')}")
            raise
        return True

    try:
        return polling2.poll(
            attempt,
            step=retry_interval,
            max_tries=retry_times,
            ignore_exceptions=(UpdateFailed,),
        )
    except polling2.MaxCallException as e:
        raise e.last


def apply_fee_updates(
    node,
    updates,
    own_public_key,
    logger,
    retry_interval=RETRY_INTERVAL_SECONDS,
    retry_times=RETRY_TIMES,
    max_workers=MAX_WORKERS,
):
    """Apply all records concurrently. The first record to exhaust its retries aborts the stage."""
    if not updates:
        return

    executor = ThreadPoolExecutor(max_workers=max_workers)
    try:
        futures = [
            executor.submit(
                apply_fee_update,
                node,
                update,
                own_public_key,
                logger,
                retry_interval,
                retry_times,
            )
            for update in updates
        ]
        for future in as_completed(futures):
            future.result()
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def build_fee_rows(aliases, channels, peer_keys, fee_rates):
    """Report rows: the highest fee rate we charge towards each peer."""
    targets = set(k for k in peer_keys if k)
    peers = []

    for entry in aliases:
        points = {
            as_tx_out(c) for c in channels if c["partner_public_key"] == entry["id"]
        }
        peer_rates = [r["fee_rate"] for r in fee_rates if as_tx_out(r) in points]

        peers.append(
            {
                "alias": entry["alias"] or short_key(entry["id"]),
                "out_fee": format_fee_rate(max(peer_rates))["display"]
                if peer_rates
                else NO_FEE,
                "public_key": entry["id"],
                "is_target": entry["id"] in targets,
            }
        )

    rows = [list(HEADER)] + [[p["alias"], p["out_fee"], p["public_key"]] for p in peers]
    return {"rows": rows, "peers": peers}


def adjust_fees(
    node,
    logger,
    to,
    fee_rate=None,
    cltv_delta=None,
    dry_run=False,
    amboss=None,
    retry_interval=RETRY_INTERVAL_SECONDS,
    retry_times=RETRY_TIMES,
    max_workers=MAX_WORKERS,
):
    """View and adjust routing fees.

    Args:
        node: LndNode (or anything with the same read/write methods).
        logger: logging.Logger used for progress and retry messages.
        to (list): Peer aliases, alias fragments, key prefixes or public keys.
        fee_rate (int): Fee rate in ppm to set towards the peers. None only reports.
        cltv_delta (int): Optional CLTV delta to set instead of the peer's current one.
        dry_run (bool): Plan updates without applying them.
        amboss: Optional AmbossClient used when LND has no alias for a peer.

    Returns:
        dict: rows (header first, then one row per peer), peers (row dicts
              with an is_target flag) and updates (the planned records).
    """
    validate_arguments(node, logger, to, fee_rate=fee_rate, cltv_delta=cltv_delta)

    def get_peers(results):
        channels = results["get_channels"]
        if not to:
            return []
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(
                executor.map(lambda query: find_key(node, channels, query, amboss), to)
            )

    def update_fees(results):
        own_public_key = results["get_public_key"]["public_key"]
        peer_keys = [peer["public_key"] for peer in results["get_peers"]]

        updates = plan_fee_updates(
            fee_rate,
            own_public_key,
            peer_keys,
            results["get_channels"],
            results["get_pending"],
            results["get_fee_rates"],
            results["get_policies"],
            cltv_delta=cltv_delta,
        )
        if fee_rate is None:
            return updates

        logger.info(f"Planned {len(updates)} fee updates towards {len(set(peer_keys) - {None})} peers")
        if dry_run:
            logger.info("Dry run, not applying fee updates")
            return updates

        apply_fee_updates(
            node,
            updates,
            own_public_key,
            logger,
            retry_interval=retry_interval,
            retry_times=retry_times,
            max_workers=max_workers,
        )
        return updates

    def fees(results):
        peer_keys = [peer["public_key"] for peer in results["get_peers"]]
        return build_fee_rows(
            results["get_aliases"],
            results["get_channels"],
            peer_keys,
            results["get_rates"],
        )

    results = run_task_graph(
        {
            "get_channels": ([], lambda _: node.get_channels()),
            "get_pending": ([], lambda _: node.get_pending_channels()),
            "get_public_key": ([], lambda _: node.get_wallet_info()),
            "get_fee_rates": ([], lambda _: node.get_fee_rates()),
            "get_aliases": (
                ["get_channels"],
                lambda r: get_aliases(node, r["get_channels"], amboss, max_workers),
            ),
            "get_peers": (["get_channels"], get_peers),
            "get_policies": (
                ["get_channels"],
                lambda r: get_policies(node, r["get_channels"], max_workers),
            ),
            "update_fees": (
                [
                    "get_channels",
                    "get_fee_rates",
                    "get_peers",
                    "get_pending",
                    "get_policies",
                    "get_public_key",
                ],
                update_fees,
            ),
            "get_rates": (["update_fees"], lambda _: node.get_fee_rates()),
            "fees": (["get_aliases", "get_channels", "get_peers", "get_rates"], fees),
        },
        max_workers=max_workers,
    )

    report = results["fees"]
    report["updates"] = results["update_fees"]
    return report
