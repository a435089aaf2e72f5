"""
Thin adapter around `lncli`.

Every method runs one lncli command, decodes its JSON output and returns
plain dicts keyed the way the rest of the package expects them:

    channel:  id, transaction_id, transaction_vout, partner_public_key,
              capacity, is_active, is_pending
    fee rate: id, transaction_id, transaction_vout, base_fee_mtokens, fee_rate
    policy:   id, transaction_id, transaction_vout, policies[]

Base fees stay decimal strings here so callers can do exact integer math.
"""

import json
import logging
import subprocess

from .config import DEFAULT_BASE_FEE_MSAT, DEFAULT_TIME_LOCK_DELTA
from .errors import NodeQueryFailed, NotFound, UpdateFailed

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGES = ("edge not found", "unable to find node", "code = NotFound")

PENDING_SECTIONS = (
    "pending_open_channels",
    "pending_closing_channels",
    "pending_force_closing_channels",
    "waiting_close_channels",
)


def split_channel_point(channel_point):
    """'txid:vout' -> (txid, vout)"""
    transaction_id, transaction_vout = channel_point.split(":")
    return transaction_id, int(transaction_vout)


def _policy_side(public_key, policy):
    return {
        "public_key": public_key,
        "base_fee_mtokens": str(policy.get("fee_base_msat", "0")),
        "cltv_delta": int(policy.get("time_lock_delta", 0)),
        "fee_rate": int(policy.get("fee_rate_milli_msat", "0")),
        "is_disabled": policy.get("disabled", False),
    }


class LndNode:
    """Read/write capability for one LND node, reached through lncli."""

    def __init__(
        self,
        lncli_path="lncli",
        rpcserver=None,
        macaroonpath=None,
        tlscertpath=None,
        network=None,
        default_base_fee_msat=DEFAULT_BASE_FEE_MSAT,
        default_time_lock_delta=DEFAULT_TIME_LOCK_DELTA,
    ):
        self.lncli_path = lncli_path
        self.global_args = []
        for flag, value in (
            ("rpcserver", rpcserver),
            ("macaroonpath", macaroonpath),
            ("tlscertpath", tlscertpath),
            ("network", network),
        ):
            if value:
                self.global_args.append(f"--{flag}={value}")
        self.default_base_fee_msat = default_base_fee_msat
        self.default_time_lock_delta = default_time_lock_delta

    @classmethod
    def from_config(cls, config, settings):
        return cls(
            lncli_path=config.get("paths", "lncli_path", fallback="lncli"),
            rpcserver=config.get("lnd", "rpcserver", fallback=None),
            macaroonpath=config.get("lnd", "macaroonpath", fallback=None),
            tlscertpath=config.get("lnd", "tlscertpath", fallback=None),
            network=config.get("lnd", "network", fallback=None),
            default_base_fee_msat=settings["default_base_fee_msat"],
            default_time_lock_delta=settings["default_time_lock_delta"],
        )

    def _command(self, args):
        return [self.lncli_path] + self.global_args + list(args)

    def _run(self, args):
        command = self._command(args)
        logger.debug(f"Command: {' '.join(command)}")
        try:
            result = subprocess.run(command, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            if any(message in stderr for message in NOT_FOUND_MESSAGES):
                raise NotFound(
                    f"lncli {args[0]}: not found", command=command, stderr=stderr
                ) from e
            logger.error(f"Error executing lncli {args[0]}: {stderr}")
            raise NodeQueryFailed(
                f"Failed to execute lncli {args[0]}: {stderr}",
                command=command,
                stderr=stderr,
            ) from e
        except OSError as e:
            raise NodeQueryFailed(
                f"Failed to execute lncli {args[0]}: {e}", command=command
            ) from e

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.error(f"Error decoding lncli {args[0]} output: {e}")
            raise NodeQueryFailed(
                f"Failed to decode lncli {args[0]} output", command=command
            ) from e

    def get_channels(self):
        data = self._run(["listchannels"])
        channels = []
        for channel in data.get("channels", []):
            transaction_id, transaction_vout = split_channel_point(
                channel["channel_point"]
            )
            channels.append(
                {
                    "id": channel.get("chan_id"),
                    "transaction_id": transaction_id,
                    "transaction_vout": transaction_vout,
                    "partner_public_key": channel["remote_pubkey"],
                    "capacity": int(channel.get("capacity", 0)),
                    "is_active": channel.get("active", False),
                    "is_pending": False,
                }
            )
        return channels

    def get_pending_channels(self):
        data = self._run(["pendingchannels"])
        channels = []
        for section in PENDING_SECTIONS:
            for item in data.get(section, []):
                channel = item["channel"]
                transaction_id, transaction_vout = split_channel_point(
                    channel["channel_point"]
                )
                channels.append(
                    {
                        "id": None,
                        "transaction_id": transaction_id,
                        "transaction_vout": transaction_vout,
                        "partner_public_key": channel["remote_node_pub"],
                        "capacity": int(channel.get("capacity", 0)),
                        "is_active": False,
                        "is_pending": True,
                    }
                )
        return channels

    def get_wallet_info(self):
        data = self._run(["getinfo"])
        return {"public_key": data["identity_pubkey"], "alias": data.get("alias", "")}

    def get_fee_rates(self):
        data = self._run(["feereport"])
        fee_rates = []
        for fee in data.get("channel_fees", []):
            transaction_id, transaction_vout = split_channel_point(fee["channel_point"])
            fee_rates.append(
                {
                    "id": fee.get("chan_id"),
                    "transaction_id": transaction_id,
                    "transaction_vout": transaction_vout,
                    "base_fee_mtokens": str(fee.get("base_fee_msat", "0")),
                    "fee_rate": int(fee.get("fee_per_mil", "0")),
                }
            )
        return fee_rates

    def get_channel(self, channel_id):
        """Both announced policies of a channel. Raises NotFound for unknown edges."""
        data = self._run(["getchaninfo", "--chan_id", str(channel_id)])
        transaction_id, transaction_vout = split_channel_point(data["chan_point"])
        policies = []
        for node, policy in (("node1", "node1_policy"), ("node2", "node2_policy")):
            # A side that never announced has a null policy
            if data.get(policy):
                policies.append(_policy_side(data[f"{node}_pub"], data[policy]))
        return {
            "id": data.get("channel_id", str(channel_id)),
            "transaction_id": transaction_id,
            "transaction_vout": transaction_vout,
            "policies": policies,
        }

    def get_node(self, public_key):
        data = self._run(["getnodeinfo", "--pub_key", public_key])
        node = data.get("node", {})
        return {"public_key": node.get("pub_key", public_key), "alias": node.get("alias", "")}

    def update_channel_fee(
        self,
        transaction_id,
        transaction_vout,
        fee_rate,
        from_public_key,
        base_fee_mtokens=None,
        cltv_delta=None,
    ):
        """Set our side of one channel's policy.

        Missing base fee and CLTV delta fall back to the node defaults. Any
        failure raises UpdateFailed so the caller can decide to retry.
        """
        channel_point = f"{transaction_id}:{transaction_vout}"
        if base_fee_mtokens is None:
            base_fee_mtokens = self.default_base_fee_msat
        if cltv_delta is None:
            cltv_delta = self.default_time_lock_delta

        args = [
            "updatechanpolicy",
            "--base_fee_msat",
            str(base_fee_mtokens),
            "--fee_rate_ppm",
            str(fee_rate),
            "--time_lock_delta",
            str(cltv_delta),
            "--chan_point",
            channel_point,
        ]
        logger.info(
            f"Setting policy of {channel_point} for {from_public_key[:8]}: "
            f"fee_rate={fee_rate} base_fee_msat={base_fee_mtokens} time_lock_delta={cltv_delta}"
        )
        try:
            result = self._run(args)
        except NodeQueryFailed as e:
            raise UpdateFailed(
                f"Error updating policy of {channel_point}: {e}", channel=channel_point
            ) from e

        failed_updates = result.get("failed_updates", [])
        if failed_updates:
            reasons = ", ".join(
                f.get("update_error") or str(f.get("reason", "")) for f in failed_updates
            )
            raise UpdateFailed(
                f"Error updating policy of {channel_point}: {reasons}",
                channel=channel_point,
                failures=failed_updates,
            )
        return result
