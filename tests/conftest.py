import pytest
from unittest.mock import MagicMock

from routing_fees.errors import NotFound

OWN_KEY = "03" + "0" * 64
PEER_KEY = "02" + "a" * 64
OTHER_KEY = "02" + "b" * 64


def channel(transaction_id, transaction_vout, partner, id=None, is_pending=False):
    return {
        "id": id,
        "transaction_id": transaction_id,
        "transaction_vout": transaction_vout,
        "partner_public_key": partner,
        "capacity": 1000000,
        "is_active": not is_pending,
        "is_pending": is_pending,
    }


def fee_rate(transaction_id, transaction_vout, rate, base_fee_mtokens):
    return {
        "id": None,
        "transaction_id": transaction_id,
        "transaction_vout": transaction_vout,
        "base_fee_mtokens": base_fee_mtokens,
        "fee_rate": rate,
    }


def policy(transaction_id, transaction_vout, own_cltv_delta, own_base_fee="1000"):
    return {
        "id": None,
        "transaction_id": transaction_id,
        "transaction_vout": transaction_vout,
        "policies": [
            {
                "public_key": PEER_KEY,
                "base_fee_mtokens": "0",
                "cltv_delta": 144,
                "fee_rate": 1,
                "is_disabled": False,
            },
            {
                "public_key": OWN_KEY,
                "base_fee_mtokens": own_base_fee,
                "cltv_delta": own_cltv_delta,
                "fee_rate": 1,
                "is_disabled": False,
            },
        ],
    }


TX_A = "a1" * 32
TX_B = "b2" * 32
TX_C = "c3" * 32


@pytest.fixture
def snapshot():
    """Two channels to PEER_KEY with known policies, one to OTHER_KEY without."""
    return {
        "channels": [
            channel(TX_A, 0, PEER_KEY, id="100"),
            channel(TX_B, 1, PEER_KEY, id="200"),
            channel(TX_C, 0, OTHER_KEY, id="300"),
        ],
        "pending_channels": [],
        "fee_rates": [
            fee_rate(TX_A, 0, 50, "1000"),
            fee_rate(TX_B, 1, 75, "2000"),
            fee_rate(TX_C, 0, 10, "1"),
        ],
        "policies": {
            "100": policy(TX_A, 0, 40),
            "200": policy(TX_B, 1, 80),
        },
        "aliases": {PEER_KEY: "PeerNode", OTHER_KEY: ""},
    }


@pytest.fixture
def node(snapshot):
    """A mocked LndNode serving the snapshot."""
    mock_node = MagicMock()
    mock_node.get_channels.return_value = snapshot["channels"]
    mock_node.get_pending_channels.return_value = snapshot["pending_channels"]
    mock_node.get_wallet_info.return_value = {"public_key": OWN_KEY, "alias": "me"}
    mock_node.get_fee_rates.return_value = snapshot["fee_rates"]

    def get_channel(channel_id):
        if channel_id not in snapshot["policies"]:
            raise NotFound("lncli getchaninfo: not found")
        return snapshot["policies"][channel_id]

    def get_node(public_key):
        return {"public_key": public_key, "alias": snapshot["aliases"].get(public_key, "")}

    mock_node.get_channel.side_effect = get_channel
    mock_node.get_node.side_effect = get_node
    mock_node.update_channel_fee.return_value = {"failed_updates": []}
    return mock_node


@pytest.fixture
def logger():
    return MagicMock()
