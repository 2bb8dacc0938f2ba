"""HTTP Ledger Gateway — LedgerGateway protocol over a REST token service.

Invariants:
    - One HTTP request per protocol call (no batching, no composed transactions)
    - Non-2xx responses raise httpx.HTTPStatusError; malformed bodies raise LedgerResponseError
    - Requests carry the treasury operator token as a Bearer header

Design Decisions:
    - httpx.AsyncClient owned by the gateway; closed via aclose() in the lifespan
    - No retry here: retry policy lives in ResilientLedgerGateway (reads only)
"""

import logging

import httpx

logger = logging.getLogger(__name__)


class LedgerResponseError(Exception):
    """Gateway answered 2xx but the body is not what the protocol expects."""


class HttpLedgerGateway:
    """REST client for the external token gateway."""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def mint(self, token_kind: str, amount: int) -> str:
        return await self._post_tx(f"/v1/tokens/{token_kind}/mint", {"amount": amount})

    async def transfer(
        self, token_kind: str, sender: str, recipient: str, amount: int,
    ) -> str:
        return await self._post_tx(
            f"/v1/tokens/{token_kind}/transfers",
            {"from": sender, "to": recipient, "amount": amount},
        )

    async def freeze(self, token_kind: str, holder: str) -> str:
        return await self._post_tx(
            f"/v1/tokens/{token_kind}/accounts/{holder}/freeze", {},
        )

    async def unfreeze(self, token_kind: str, holder: str) -> str:
        return await self._post_tx(
            f"/v1/tokens/{token_kind}/accounts/{holder}/unfreeze", {},
        )

    async def burn(self, token_kind: str, amount: int) -> str:
        return await self._post_tx(f"/v1/tokens/{token_kind}/burn", {"amount": amount})

    async def wipe(self, token_kind: str, holder: str, amount: int) -> str:
        return await self._post_tx(
            f"/v1/tokens/{token_kind}/accounts/{holder}/wipe", {"amount": amount},
        )

    async def query_balance(self, holder: str, token_kind: str) -> int:
        response = await self.client.get(
            f"/v1/accounts/{holder}/balances/{token_kind}",
        )
        response.raise_for_status()
        body = response.json()
        balance = body.get("balance") if isinstance(body, dict) else None
        if not isinstance(balance, int):
            raise LedgerResponseError(f"balance missing in response: {body!r}")
        return balance

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _post_tx(self, path: str, payload: dict) -> str:
        response = await self.client.post(path, json=payload)
        response.raise_for_status()
        body = response.json()
        tx_id = body.get("transaction_id") if isinstance(body, dict) else None
        if not isinstance(tx_id, str) or not tx_id:
            raise LedgerResponseError(f"transaction_id missing in response: {body!r}")
        logger.debug(f"Ledger call {path} -> {tx_id}")
        return tx_id
