"""Custody service HTTP client with batched settlements and exponential backoff retry"""

import logging
import threading
import time
import uuid
import httpx
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List
from mortgage_gateway.config import settings
from mortgage_gateway.domain.exceptions import CustodyTransferFailed
from mortgage_gateway.domain.models import AssetDescriptor, AssetKind
from mortgage_gateway.infrastructure.observability.metrics import custody_latency_histogram, custody_failure_counter


def serialize_asset(asset: AssetDescriptor) -> Dict[str, Any]:
    return {
        "kind": asset.kind.value,
        "contract": asset.contract,
        "token_id": asset.token_id,
        "quantity": asset.quantity,
    }


def deserialize_asset(data: Dict[str, Any]) -> AssetDescriptor:
    return AssetDescriptor(
        kind=AssetKind(data["kind"]),
        contract=data["contract"],
        token_id=data.get("token_id"),
        quantity=data.get("quantity"),
    )


class HttpCustodyClient:
    """
    Client for the external custody service.

    Instructions issued inside `atomic()` are collected and sent as one
    settlement request, which the service applies all-or-nothing. Each
    settlement carries an idempotency key so retries cannot apply it twice.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url if base_url is not None else settings.custody_api_base
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.client = client
        self.max_retries = max_retries if max_retries is not None else settings.custody_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.custody_backoff_base
        self.sleep = sleep
        self._local = threading.local()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if getattr(self._local, "batch", None) is not None:
            # Nested block joins the enclosing settlement
            yield
            return

        self._local.batch = []
        try:
            yield
            batch = self._local.batch
        finally:
            self._local.batch = None

        if batch:
            self.submit_settlement(batch)

    def pull_asset(self, asset: AssetDescriptor, from_party: str, into: str) -> None:
        self._instruct({"op": "pull_asset", "asset": serialize_asset(asset), "from": from_party, "to": into})

    def release_asset(self, asset: AssetDescriptor, to: str, escrow: str) -> None:
        self._instruct({"op": "release_asset", "asset": serialize_asset(asset), "from": escrow, "to": to})

    def accept_value(self, from_party: str, amount: int, escrow: str) -> None:
        self._instruct({"op": "accept_value", "amount": str(amount), "from": from_party, "to": escrow})

    def pay_out(self, to: str, amount: int, escrow: str) -> None:
        self._instruct({"op": "pay_out", "amount": str(amount), "from": escrow, "to": to})

    def _instruct(self, instruction: Dict[str, Any]) -> None:
        batch = getattr(self._local, "batch", None)
        if batch is None:
            self.submit_settlement([instruction])
        else:
            batch.append(instruction)

    def submit_settlement(self, instructions: List[Dict[str, Any]]) -> None:
        """
        Send one settlement to the custody service with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^attempt)
        - Retries on 5xx errors and network failures
        - 4xx means the service rejected the settlement; no retry

        Raises:
            CustodyTransferFailed: rejected, or still failing after all retries
        """
        settlement_id = str(uuid.uuid4())
        payload = {"settlement_id": settlement_id, "instructions": instructions}
        headers = {"Idempotency-Key": settlement_id}

        if self.client is not None:
            self._post_with_retry(self.client, payload, headers)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                self._post_with_retry(client, payload, headers)

    def _post_with_retry(self, client: httpx.Client, payload: Dict[str, Any], headers: Dict[str, str]) -> None:
        attempt = 0
        while True:
            try:
                with custody_latency_histogram.time():
                    response = client.post(
                        f"{self.base_url}/custody/settlements",
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                    return  # Success

            except httpx.HTTPStatusError as e:
                custody_failure_counter.inc()
                if e.response.status_code < 500:
                    raise CustodyTransferFailed(
                        f"Custody rejected settlement {payload['settlement_id']}: {e.response.text}"
                    ) from e
                attempt += 1
                error: Exception = e

            except httpx.RequestError as e:
                custody_failure_counter.inc()
                attempt += 1
                error = e

            if attempt >= self.max_retries:
                # Final failure after all retries
                raise CustodyTransferFailed(
                    f"Custody unavailable after {attempt} attempts: {error}"
                ) from error

            backoff = self.backoff_base * (2 ** (attempt - 1))
            logging.warning(
                "Custody settlement failed, retrying",
                extra={"settlement_id": payload["settlement_id"], "attempt": attempt, "backoff": backoff},
            )
            self.sleep(backoff)
