"""
Solana JSON-RPC client using httpx sync client.
Single-transaction lookups only; every call is bounded by a request timeout
and routed through the `solana_rpc` circuit breaker.
"""
import itertools
import logging
import time
from typing import Any

import httpx
import pybreaker

from app.billing.errors import RpcError, TransientNetworkError
from app.utils.metrics import (
    solana_rpc_requests_total,
    solana_rpc_request_duration_seconds,
)


logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class _RetryableHttpStatus(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class SolanaRpcClient:
    """
    Sync Solana RPC client.
    Transport failures surface as TransientNetworkError, node-side JSON-RPC
    errors as RpcError.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        commitment: str = "confirmed",
        breaker: pybreaker.CircuitBreaker | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._commitment = commitment
        self._breaker = breaker
        self._client = client
        self._ids = itertools.count(1)

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _record_request(self, method: str, status: str, duration: float) -> None:
        solana_rpc_requests_total.labels(method=method, status=status).inc()
        solana_rpc_request_duration_seconds.labels(method=method).observe(duration)

    def _post(self, payload: dict) -> dict:
        resp = self.client.post(self._rpc_url, json=payload)
        if resp.status_code in RETRYABLE_STATUS_CODES:
            raise _RetryableHttpStatus(resp.status_code)
        resp.raise_for_status()
        return resp.json()

    def _call(self, method: str, params: list) -> Any:
        """Make JSON-RPC call; returns the `result` member."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        start = time.time()
        try:
            if self._breaker is not None:
                body = self._breaker.call(self._post, payload)
            else:
                body = self._post(payload)
        except pybreaker.CircuitBreakerError:
            self._record_request(method, "circuit_open", time.time() - start)
            logger.warning("solana_rpc_circuit_open", extra={"method": method})
            raise TransientNetworkError("Solana RPC temporarily unavailable (circuit open)")
        except (httpx.TimeoutException, httpx.TransportError, _RetryableHttpStatus) as e:
            self._record_request(method, "transient", time.time() - start)
            logger.warning("solana_rpc_unavailable", extra={"method": method, "error": str(e)})
            raise TransientNetworkError(f"Solana RPC unavailable: {e}")
        except (httpx.HTTPStatusError, ValueError) as e:
            self._record_request(method, "error", time.time() - start)
            logger.warning("solana_rpc_bad_response", extra={"method": method, "error": str(e)})
            raise RpcError(-1, f"Unexpected RPC response: {e}")

        if body.get("error"):
            error = body["error"]
            self._record_request(method, "rpc_error", time.time() - start)
            logger.warning("solana_rpc_error", extra={"method": method, "error": error.get("message")})
            raise RpcError(int(error.get("code", -1)), str(error.get("message", "Unknown error")))

        self._record_request(method, "success", time.time() - start)
        return body.get("result")

    def get_transaction(self, signature: str) -> dict | None:
        """Parsed transaction by signature, or None if the node does not know it (yet)."""
        return self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self._commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
