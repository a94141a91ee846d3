"""
Coordination of remote lookups for one search session.

At most one provider call is outstanding at a time. Every new search
invocation cancels the previous call and bumps a sequence number; callers
compare their own number against the current one to drop stale results.
The provider boundary is turned into an explicit LookupOutcome so callers
branch on the outcome kind instead of catching a cancellation sentinel.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from domain.models import Candidate, RawPlaceRecord
from services.candidate_store import QueryResultCache

logger = logging.getLogger(__name__)


class LookupCancelled(Exception):
    """Raised by a provider when its cancellation token was cancelled."""


class CancellationToken:
    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], object]) -> None:
        """Run `callback` on cancellation (immediately if already cancelled)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise LookupCancelled()


class RemoteLookupProvider(Protocol):
    async def fetch_candidates(
        self, query: str, token: CancellationToken
    ) -> List[RawPlaceRecord]:
        """Return matching records ([] for no results).

        Must raise LookupCancelled once `token` is cancelled; any other
        exception is treated as a lookup failure.
        """
        ...


class LookupStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class LookupOutcome:
    status: LookupStatus
    candidates: Tuple[Candidate, ...] = ()
    from_cache: bool = False
    error: Optional[BaseException] = None

    @classmethod
    def completed(cls, candidates: Sequence[Candidate], from_cache: bool = False) -> "LookupOutcome":
        return cls(LookupStatus.COMPLETED, tuple(candidates), from_cache=from_cache)

    @classmethod
    def cancelled(cls) -> "LookupOutcome":
        return cls(LookupStatus.CANCELLED)

    @classmethod
    def failed(cls, error: BaseException) -> "LookupOutcome":
        return cls(LookupStatus.FAILED, error=error)


class RequestCoordinator:
    def __init__(
        self,
        provider: RemoteLookupProvider,
        cache: QueryResultCache,
        prepare: Callable[[RawPlaceRecord], Candidate],
    ):
        self.provider = provider
        self.cache = cache
        self.prepare = prepare
        self._sequence = 0
        self._active: Optional[CancellationToken] = None

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def in_flight(self) -> bool:
        return self._active is not None

    def begin(self) -> int:
        """Start a new search invocation: cancel whatever is in flight, return its sequence number."""
        self.cancel_active()
        self._sequence += 1
        return self._sequence

    def is_current(self, sequence: int) -> bool:
        return sequence == self._sequence

    def cancel_active(self) -> None:
        token, self._active = self._active, None
        if token is not None and not token.cancelled:
            logger.debug("Cancelling in-flight lookup (sequence %d)", self._sequence)
            token.cancel()

    async def lookup(self, raw_query: str, normalized_query: str) -> LookupOutcome:
        """Resolve candidates for a query, from the result cache when possible."""
        cached = self.cache.get(normalized_query)
        if cached is not None:
            logger.debug("Query cache hit for %r", normalized_query)
            return LookupOutcome.completed(cached, from_cache=True)

        self.cancel_active()
        token = CancellationToken()
        self._active = token
        task = asyncio.ensure_future(self.provider.fetch_candidates(raw_query, token))
        token.add_callback(task.cancel)

        try:
            records = await task
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            return LookupOutcome.cancelled()
        except LookupCancelled:
            return LookupOutcome.cancelled()
        except Exception as exc:
            logger.warning("Remote lookup failed for %r: %s", raw_query, exc)
            return LookupOutcome.failed(exc)
        finally:
            if self._active is token:
                self._active = None

        return LookupOutcome.completed(
            [self.prepare(record) for record in records or [] if record is not None]
        )
