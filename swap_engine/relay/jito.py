from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests
from loguru import logger

from swap_engine.errors import BundleFailed, BundleSubmitIndeterminate


class RelayError(Exception):
    """Transport or protocol failure talking to the block engine."""


class RelayTransportError(RelayError):
    """The request timed out or the connection dropped before a reply arrived."""


@dataclass
class JitoClient:
    """JSON-RPC client for the Jito block engine bundle API."""

    base_url: str
    timeout: float = 15

    @property
    def bundles_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/v1/bundles"

    def _rpc_call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            r = requests.post(self.bundles_url, json=payload, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise RelayTransportError(f"{method} request failed: {e}") from e
        try:
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise RelayError(f"{method} request failed: {e}") from e
        if not isinstance(data, dict):
            raise RelayError(f"{method} returned unexpected payload: {data!r}")
        if data.get("error"):
            raise RelayError(f"{method} error: {data['error']}")
        return data.get("result")

    def get_tip_accounts(self) -> list[str]:
        accounts = self._rpc_call("getTipAccounts", [])
        if not isinstance(accounts, list) or not accounts:
            raise RelayError("No tip accounts available")
        return accounts

    def simulate_bundle(self, transactions: list[str]) -> None:
        try:
            result = self._rpc_call("simulateBundle", [{"encodedTransactions": transactions}])
        except RelayError as e:
            raise BundleFailed(f"Bundle simulation failed: {e}") from e
        value = result.get("value") if isinstance(result, dict) else None
        err = value.get("err") if isinstance(value, dict) else None
        if err:
            raise BundleFailed(f"Bundle simulation failed: {err}")
        logger.debug("Bundle simulation passed")

    def send_bundle(self, transactions: list[str]) -> str:
        try:
            bundle_id = self._rpc_call("sendBundle", [transactions])
        except RelayTransportError as e:
            raise BundleSubmitIndeterminate(
                f"Bundle submission outcome is indeterminate: {e}; the relay may have "
                "accepted it, verify the wallet state on-chain before retrying"
            ) from e
        except RelayError as e:
            raise BundleFailed(f"Failed to send bundle: {e}") from e
        if not isinstance(bundle_id, str) or not bundle_id:
            raise BundleFailed(f"Failed to send bundle: no bundle id in response ({bundle_id!r})")
        return bundle_id

    def get_inflight_bundle_statuses(self, bundle_ids: list[str]) -> list[dict]:
        result = self._rpc_call("getInflightBundleStatuses", [bundle_ids])
        if not isinstance(result, dict):
            return []
        return result.get("value") or []
