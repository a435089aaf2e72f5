import json
import logging

import requests

from .errors import AmbossAPIError

logger = logging.getLogger(__name__)

AMBOSS_URL = "https://api.amboss.space/graphql"

NODE_ALIAS_QUERY = """
    query GetNodeAlias($pubkey: String!) {
        getNodeAlias(pubkey: $pubkey)
    }
"""


class AmbossClient:
    """Alias lookups for nodes our own graph has no announcement for."""

    def __init__(self, token, url=AMBOSS_URL, timeout=30):
        self.token = token
        self.url = url
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        token = config.get("credentials", "amboss_authorization", fallback="")
        if not token:
            return None
        return cls(token, url=config.get("urls", "amboss_api", fallback=AMBOSS_URL))

    def get_node_alias(self, pubkey):
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }
        payload = {"query": NODE_ALIAS_QUERY, "variables": {"pubkey": pubkey}}
        try:
            response = requests.post(
                self.url, json=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error fetching Amboss alias for {pubkey}: {e}")
            raise AmbossAPIError(
                f"Error fetching Amboss alias for {pubkey}: {e}",
                status_code=getattr(e.response, "status_code", None),
            ) from e

        logger.debug(f"Raw Amboss API response for {pubkey}: {json.dumps(data)}")
        if data.get("errors"):
            raise AmbossAPIError(
                f"Amboss API error for {pubkey}: {data['errors']}", response_data=data
            )
        return (data.get("data") or {}).get("getNodeAlias")
