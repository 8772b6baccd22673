from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from modules.auction.units import format_amount
from modules.auction.validation import is_valid_address
from modules.common import log_event

from .types import (
    STATUS_CONFIRMED,
    STATUS_DRY_RUN,
    STATUS_FAILED,
    STATUS_REVERTED,
    CommitRequest,
    ExecutionResult,
)


def _hex_to_int(value: Any, *, field: str) -> int:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise RuntimeError(f"Unexpected {field} value: {value!r}")
    return int(value, 16)


class DryRunCommitExecutor:
    def __init__(self, *, logger: logging.Logger, balance: int) -> None:
        self._logger = logger
        self._balance = balance

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def healthcheck(self) -> None:
        return None

    async def get_balance(self) -> int:
        return self._balance

    async def execute(self, *, request: CommitRequest, amount: int) -> ExecutionResult:
        log_event(
            self._logger,
            level="info",
            event="dry_run_commit",
            message="Dry run: commit not submitted",
            token=request.token,
            amount=format_amount(amount),
            rule=request.decision.rule_name,
            reason=request.decision.reason,
        )
        return ExecutionResult(
            status=STATUS_DRY_RUN,
            token=request.token,
            amount=amount,
            reason="dry run",
            metadata={"rule": request.decision.rule_name, "urgency": request.decision.urgency},
        )


class RpcCommitExecutor:
    """Submits commits through a node-managed account over JSON-RPC.

    The node signs ``eth_sendTransaction``; no key material passes through here.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc_url: str,
        sender: str,
        contract_address: str,
        calldata: str = "0x",
        gas_limit: int = 300_000,
        request_timeout_seconds: float = 8.0,
        confirm_timeout_seconds: float = 45.0,
        confirm_poll_interval_seconds: float = 1.0,
    ) -> None:
        self._logger = logger
        self._rpc_url = rpc_url
        self._sender = sender
        self._contract_address = contract_address
        self._calldata = calldata or "0x"
        self._gas_limit = gas_limit
        self._request_timeout_seconds = request_timeout_seconds
        self._confirm_timeout_seconds = confirm_timeout_seconds
        self._confirm_poll_interval_seconds = confirm_poll_interval_seconds
        self._http_session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if not self._rpc_url:
            raise ValueError("RPC_URL is required when DRY_RUN is false.")
        if not is_valid_address(self._sender):
            raise ValueError("WALLET_ADDRESS must be a valid address when DRY_RUN is false.")
        if not is_valid_address(self._contract_address):
            raise ValueError("COMMIT_CONTRACT_ADDRESS must be a valid address when DRY_RUN is false.")

        if self._http_session is None:
            timeout = aiohttp.ClientTimeout(total=self._request_timeout_seconds)
            self._http_session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def healthcheck(self) -> None:
        await self._rpc_call("eth_blockNumber")

    async def _rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        if self._http_session is None:
            await self.connect()
        if self._http_session is None:
            raise RuntimeError("RPC HTTP session is not initialized.")

        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params or [],
        }

        async with self._http_session.post(self._rpc_url, json=payload) as response:
            body = await response.json(content_type=None)
            if response.status >= 400:
                raise RuntimeError(f"RPC call failed: method={method} status={response.status} body={body}")

        if not isinstance(body, dict):
            raise RuntimeError(f"Invalid RPC response for {method}: {body}")

        if body.get("error"):
            raise RuntimeError(f"RPC error for {method}: {body['error']}")

        return body.get("result")

    async def get_balance(self) -> int:
        result = await self._rpc_call("eth_getBalance", [self._sender, "latest"])
        return _hex_to_int(result, field="eth_getBalance")

    async def _wait_for_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._confirm_timeout_seconds
        while True:
            receipt = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
            if isinstance(receipt, dict):
                return receipt
            if loop.time() >= deadline:
                return None
            await asyncio.sleep(self._confirm_poll_interval_seconds)

    async def execute(self, *, request: CommitRequest, amount: int) -> ExecutionResult:
        transaction = {
            "from": self._sender,
            "to": self._contract_address,
            "value": hex(amount),
            "data": self._calldata,
            "gas": hex(self._gas_limit),
        }
        tx_hash = await self._rpc_call("eth_sendTransaction", [transaction])
        if not isinstance(tx_hash, str) or not tx_hash:
            raise RuntimeError(f"Unexpected eth_sendTransaction response: {tx_hash!r}")

        log_event(
            self._logger,
            level="info",
            event="commit_submitted",
            message="Commit transaction submitted",
            token=request.token,
            tx_hash=tx_hash,
            amount=format_amount(amount),
            rule=request.decision.rule_name,
        )

        receipt = await self._wait_for_receipt(tx_hash)
        metadata = {"rule": request.decision.rule_name, "urgency": request.decision.urgency}
        if receipt is None:
            return ExecutionResult(
                status=STATUS_FAILED,
                token=request.token,
                amount=amount,
                tx_hash=tx_hash,
                reason=f"receipt not available after {self._confirm_timeout_seconds:g}s",
                metadata=metadata,
            )

        block_number = receipt.get("blockNumber")
        if isinstance(block_number, str) and block_number.startswith("0x"):
            metadata["block_number"] = int(block_number, 16)

        if receipt.get("status") == "0x1":
            return ExecutionResult(
                status=STATUS_CONFIRMED,
                token=request.token,
                amount=amount,
                tx_hash=tx_hash,
                reason="confirmed",
                metadata=metadata,
            )
        return ExecutionResult(
            status=STATUS_REVERTED,
            token=request.token,
            amount=amount,
            tx_hash=tx_hash,
            reason=f"transaction reverted (status={receipt.get('status')})",
            metadata=metadata,
        )
