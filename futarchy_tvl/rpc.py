"""RPC boundary: solana-py client wrapper with throttling and rate-limit retries."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Union

import base58
import httpx
from solana.rpc.api import Client
from solana.rpc.types import MemcmpOpts, TokenAccountOpts
from solders.pubkey import Pubkey

from . import config


@dataclass
class AccountSnapshot:
    address: str
    owner: str
    lamports: int
    data: bytes


def is_rate_limited(exc: BaseException) -> bool:
    """True when ``exc`` or anything in its cause chain is an HTTP 429."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, httpx.HTTPStatusError) and current.response.status_code == 429:
            return True
        message = str(current)
        if "429" in message or "Too Many Requests" in message:
            return True
        current = current.__cause__ or current.__context__
    return False


@dataclass
class RetryPolicy:
    """Exponential backoff, capped, for retryable RPC errors."""

    max_attempts: int = config.MAX_RETRIES
    base_delay: float = config.RETRY_BASE_DELAY
    max_delay: float = config.RETRY_MAX_DELAY
    throttle: float = config.THROTTLE_SECONDS
    is_retryable: Callable[[BaseException], bool] = is_rate_limited
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        attempt = 0
        while True:
            if self.throttle:
                self.sleep(self.throttle)
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                if not self.is_retryable(exc) or attempt + 1 >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logging.warning("RPC rate limited, retrying in %.1fs (attempt %d/%d)", delay, attempt + 1, self.max_attempts)
                self.sleep(delay)
                attempt += 1


def _to_pubkey(value: Union[Pubkey, str]) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(value)


def _snapshot(address: Union[Pubkey, str], account) -> Optional[AccountSnapshot]:
    if account is None:
        return None
    return AccountSnapshot(
        address=str(address),
        owner=str(account.owner),
        lamports=account.lamports,
        data=bytes(account.data),
    )


class SolanaRpc:
    """Thin facade over ``solana.rpc.api.Client`` returning ``AccountSnapshot`` records."""

    def __init__(
        self,
        client: Client,
        retry: Optional[RetryPolicy] = None,
        chunk_size: int = config.CHUNK_SIZE,
    ):
        self.client = client
        self.retry = retry or RetryPolicy()
        self.chunk_size = chunk_size

    @classmethod
    def from_endpoint(cls, rpc_endpoint: str, **kwargs) -> "SolanaRpc":
        logging.info("Using RPC endpoint %s", rpc_endpoint)
        return cls(Client(rpc_endpoint, timeout=config.RPC_TIMEOUT), **kwargs)

    def get_account(self, address: Union[Pubkey, str]) -> Optional[AccountSnapshot]:
        response = self.retry.call(self.client.get_account_info, _to_pubkey(address), encoding="base64")
        return _snapshot(address, response.value)

    def get_multiple_accounts(self, addresses: Sequence[Union[Pubkey, str]]) -> List[Optional[AccountSnapshot]]:
        """Fetch accounts in chunks; the result lines up with ``addresses``."""
        results: List[Optional[AccountSnapshot]] = []
        for start in range(0, len(addresses), self.chunk_size):
            chunk = list(addresses[start:start + self.chunk_size])
            response = self.retry.call(
                self.client.get_multiple_accounts,
                [_to_pubkey(address) for address in chunk],
                encoding="base64",
            )
            results.extend(_snapshot(address, account) for address, account in zip(chunk, response.value))
        logging.debug("Fetched %d accounts in chunks of %d", len(results), self.chunk_size)
        return results

    def get_program_accounts(
        self,
        program_id: Union[Pubkey, str],
        data_size: Optional[int] = None,
        memcmp: Optional[bytes] = None,
        memcmp_offset: int = 0,
    ) -> List[AccountSnapshot]:
        filters: List[Union[int, MemcmpOpts]] = []
        if data_size is not None:
            filters.append(data_size)
        if memcmp is not None:
            filters.append(MemcmpOpts(offset=memcmp_offset, bytes=base58.b58encode(memcmp).decode()))

        logging.debug("Fetching program accounts for %s (filters=%s)", program_id, filters)
        response = self.retry.call(
            self.client.get_program_accounts,
            _to_pubkey(program_id),
            encoding="base64",
            filters=filters or None,
        )
        accounts = [_snapshot(keyed.pubkey, keyed.account) for keyed in response.value]
        logging.info("Fetched %d accounts for program %s", len(accounts), program_id)
        return accounts

    def get_token_accounts_by_owner(
        self,
        owner: Union[Pubkey, str],
        program_id: Union[Pubkey, str],
    ) -> List[AccountSnapshot]:
        response = self.retry.call(
            self.client.get_token_accounts_by_owner,
            _to_pubkey(owner),
            TokenAccountOpts(program_id=_to_pubkey(program_id)),
        )
        return [_snapshot(keyed.pubkey, keyed.account) for keyed in response.value]
