import json
import subprocess
import unittest
from unittest.mock import MagicMock, patch

from routing_fees.errors import NodeQueryFailed, NotFound, UpdateFailed
from routing_fees.lnd import LndNode, split_channel_point

OWN_KEY = "03" + "0" * 64
PEER_KEY = "02" + "a" * 64
TXID = "ab" * 32


def completed(data):
    process = MagicMock()
    process.stdout = json.dumps(data)
    return process


class TestLndNode(unittest.TestCase):

    def setUp(self):
        self.node = LndNode(lncli_path="/usr/local/bin/lncli", rpcserver="localhost:10009")

    @patch("routing_fees.lnd.subprocess.run")
    def test_get_channels(self, mock_run):
        """listchannels is normalized to channel records."""
        mock_run.return_value = completed({
            "channels": [{
                "active": True,
                "remote_pubkey": PEER_KEY,
                "channel_point": f"{TXID}:1",
                "chan_id": "869059488283426817",
                "capacity": "5000000",
            }]
        })

        channels = self.node.get_channels()

        self.assertEqual(channels, [{
            "id": "869059488283426817",
            "transaction_id": TXID,
            "transaction_vout": 1,
            "partner_public_key": PEER_KEY,
            "capacity": 5000000,
            "is_active": True,
            "is_pending": False,
        }])
        args = mock_run.call_args[0][0]
        self.assertEqual(args[:3], ["/usr/local/bin/lncli", "--rpcserver=localhost:10009", "listchannels"])

    @patch("routing_fees.lnd.subprocess.run")
    def test_get_pending_channels_reads_all_sections(self, mock_run):
        mock_run.return_value = completed({
            "pending_open_channels": [
                {"channel": {"remote_node_pub": PEER_KEY, "channel_point": f"{TXID}:0", "capacity": "100000"}}
            ],
            "pending_force_closing_channels": [
                {"channel": {"remote_node_pub": PEER_KEY, "channel_point": f"{TXID}:2", "capacity": "200000"}}
            ],
            "waiting_close_channels": [],
        })

        pending = self.node.get_pending_channels()

        self.assertEqual([c["transaction_vout"] for c in pending], [0, 2])
        self.assertTrue(all(c["is_pending"] for c in pending))
        self.assertIsNone(pending[0]["id"])

    @patch("routing_fees.lnd.subprocess.run")
    def test_get_wallet_info(self, mock_run):
        mock_run.return_value = completed({"identity_pubkey": OWN_KEY, "alias": "me"})

        self.assertEqual(self.node.get_wallet_info(), {"public_key": OWN_KEY, "alias": "me"})

    @patch("routing_fees.lnd.subprocess.run")
    def test_get_fee_rates(self, mock_run):
        mock_run.return_value = completed({
            "channel_fees": [{
                "chan_id": "1",
                "channel_point": f"{TXID}:0",
                "base_fee_msat": "1000",
                "fee_per_mil": "250",
                "fee_rate": 0.00025,
            }]
        })

        rates = self.node.get_fee_rates()

        self.assertEqual(rates[0]["base_fee_mtokens"], "1000")
        self.assertEqual(rates[0]["fee_rate"], 250)

    @patch("routing_fees.lnd.subprocess.run")
    def test_get_channel_skips_unannounced_side(self, mock_run):
        mock_run.return_value = completed({
            "channel_id": "1",
            "chan_point": f"{TXID}:0",
            "node1_pub": OWN_KEY,
            "node2_pub": PEER_KEY,
            "node1_policy": {
                "time_lock_delta": 80,
                "fee_base_msat": "2000",
                "fee_rate_milli_msat": "100",
                "disabled": False,
            },
            "node2_policy": None,
        })

        channel = self.node.get_channel("1")

        self.assertEqual(channel["policies"], [{
            "public_key": OWN_KEY,
            "base_fee_mtokens": "2000",
            "cltv_delta": 80,
            "fee_rate": 100,
            "is_disabled": False,
        }])

    @patch("routing_fees.lnd.subprocess.run")
    def test_unknown_edge_raises_not_found(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(
            1, "lncli", stderr="[lncli] rpc error: code = Unknown desc = edge not found"
        )

        with self.assertRaises(NotFound):
            self.node.get_channel("1")

    @patch("routing_fees.lnd.subprocess.run")
    def test_other_failures_raise_node_query_failed(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(
            1, "lncli", stderr="[lncli] rpc error: code = Unavailable desc = connection refused"
        )

        with self.assertRaises(NodeQueryFailed) as context:
            self.node.get_channels()

        self.assertNotIsInstance(context.exception, NotFound)
        self.assertIn("connection refused", context.exception.stderr)

    @patch("routing_fees.lnd.subprocess.run")
    def test_bad_json_raises_node_query_failed(self, mock_run):
        process = MagicMock()
        process.stdout = "not json"
        mock_run.return_value = process

        with self.assertRaises(NodeQueryFailed):
            self.node.get_wallet_info()

    @patch("routing_fees.lnd.subprocess.run")
    def test_update_uses_defaults_when_policy_unknown(self, mock_run):
        mock_run.return_value = completed({"failed_updates": []})

        self.node.update_channel_fee(TXID, 0, 250, OWN_KEY)

        args = mock_run.call_args[0][0]
        self.assertIn("updatechanpolicy", args)
        self.assertEqual(args[args.index("--base_fee_msat") + 1], "1000")
        self.assertEqual(args[args.index("--fee_rate_ppm") + 1], "250")
        self.assertEqual(args[args.index("--time_lock_delta") + 1], "40")
        self.assertEqual(args[args.index("--chan_point") + 1], f"{TXID}:0")

    @patch("routing_fees.lnd.subprocess.run")
    def test_update_passes_given_policy(self, mock_run):
        mock_run.return_value = completed({"failed_updates": []})

        self.node.update_channel_fee(TXID, 3, 100, OWN_KEY, base_fee_mtokens="2000", cltv_delta=80)

        args = mock_run.call_args[0][0]
        self.assertEqual(args[args.index("--base_fee_msat") + 1], "2000")
        self.assertEqual(args[args.index("--time_lock_delta") + 1], "80")

    @patch("routing_fees.lnd.subprocess.run")
    def test_failed_updates_raise_update_failed(self, mock_run):
        mock_run.return_value = completed({
            "failed_updates": [{"reason": "UPDATE_FAILURE_PENDING", "update_error": "channel is pending"}]
        })

        with self.assertRaises(UpdateFailed) as context:
            self.node.update_channel_fee(TXID, 0, 100, OWN_KEY)

        self.assertIn("channel is pending", str(context.exception))
        self.assertEqual(context.exception.channel, f"{TXID}:0")

    @patch("routing_fees.lnd.subprocess.run")
    def test_lncli_error_on_update_raises_update_failed(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(1, "lncli", stderr="wallet locked")

        with self.assertRaises(UpdateFailed):
            self.node.update_channel_fee(TXID, 0, 100, OWN_KEY)

    def test_split_channel_point(self):
        self.assertEqual(split_channel_point(f"{TXID}:7"), (TXID, 7))


if __name__ == "__main__":
    unittest.main()
