from prettytable import PrettyTable

HEADER = ["Peer", "Out Fee", "Public Key"]
NO_FEE = "Unknown Rate"
SHORT_KEY_LENGTH = 20


# --- Color definitions for terminal output ---
class Colors:
    """Simple color codes for the terminal."""
    GREEN = '\033[92m'
    GREY = '\033[90m'
    ENDC = '\033[0m'


def color(text, code):
    return f"{code}{text}{Colors.ENDC}"


def short_key(public_key):
    return public_key[:SHORT_KEY_LENGTH]


def format_fee_rate(rate):
    """Fee rate in ppm as '<ppm> (<percent>%)'."""
    return {"display": f"{rate} ({rate / 1e4:.2f}%)"}


def render_fee_table(peers):
    """PrettyTable of report rows, targeted peers in green."""
    table = PrettyTable()
    table.field_names = HEADER
    table.align["Peer"] = "l"
    table.align["Public Key"] = "l"

    for peer in peers:
        out_fee = peer["out_fee"]
        if out_fee == NO_FEE:
            out_fee = color(out_fee, Colors.GREY)
        cells = [peer["alias"], out_fee, peer["public_key"]]
        if peer["is_target"]:
            cells = [color(peer["alias"], Colors.GREEN), color(peer["out_fee"], Colors.GREEN),
                     color(peer["public_key"], Colors.GREEN)]
        table.add_row(cells)
    return table


def render_updates_table(updates):
    table = PrettyTable()
    table.field_names = ["Channel", "Fee Rate", "Base Fee (msat)", "CLTV Delta"]
    table.align["Channel"] = "l"
    for update in updates:
        table.add_row([
            f"{update['transaction_id']}:{update['transaction_vout']}",
            update["fee_rate"],
            update.get("base_fee_mtokens", "default"),
            update.get("cltv_delta", "default"),
        ])
    return table
