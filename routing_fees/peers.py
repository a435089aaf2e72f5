import logging
import re
from concurrent.futures import ThreadPoolExecutor

from .errors import AmbossAPIError, NodeQueryFailed

logger = logging.getLogger(__name__)

PUBLIC_KEY_PATTERN = re.compile(r"^0[23][0-9a-fA-F]{64}$")


def is_public_key(value):
    return bool(PUBLIC_KEY_PATTERN.match(value or ""))


def uniq(items):
    """Deduplicate while keeping first-seen order."""
    return list(dict.fromkeys(items))


def get_node_alias(node, public_key, amboss=None):
    """Best effort alias lookup. Failures degrade to an empty alias."""
    alias = ""
    try:
        alias = node.get_node(public_key).get("alias", "")
    except NodeQueryFailed as e:
        logger.warning(f"Could not get alias for {public_key} from LND: {e}")

    if not alias and amboss is not None:
        try:
            alias = amboss.get_node_alias(public_key) or ""
        except AmbossAPIError as e:
            logger.warning(f"Could not get alias for {public_key} from Amboss: {e}")

    return {"id": public_key, "alias": alias}


def get_aliases(node, channels, amboss=None, max_workers=8):
    """Aliases of every distinct channel partner, in channel order."""
    ids = uniq(channel["partner_public_key"] for channel in channels)
    if not ids:
        return []
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(lambda id: get_node_alias(node, id, amboss), ids))


def find_key(node, channels, query, amboss=None):
    """Resolve a --to query to the public key of exactly one channel partner.

    A full public key resolves to itself. Anything else is matched,
    case-insensitively, against partner public key prefixes and, when no
    prefix matched, partner alias substrings. Returns {"query", "public_key"}
    where public_key is None when nothing or more than one peer matched.
    """
    if is_public_key(query):
        return {"query": query, "public_key": query.lower()}

    needle = query.strip().lower()
    partners = uniq(channel["partner_public_key"] for channel in channels)

    matches = [key for key in partners if needle and key.lower().startswith(needle)]

    # Key prefixes win, aliases are only looked up when no prefix matched
    if not matches:
        for key in partners:
            alias = get_node_alias(node, key, amboss)["alias"]
            if needle and needle in alias.lower():
                matches.append(key)
    matches = uniq(matches)

    if not matches:
        logger.warning(f"No channel peer matches '{query}', skipping it")
        return {"query": query, "public_key": None}

    if len(matches) > 1:
        logger.warning(
            f"'{query}' matches {len(matches)} peers ({', '.join(m[:8] for m in matches)}), skipping it"
        )
        return {"query": query, "public_key": None}

    logger.debug(f"Resolved '{query}' to {matches[0]}")
    return {"query": query, "public_key": matches[0]}
