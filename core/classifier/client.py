"""Batched semantic classification of patterns the deterministic resolver missed.

Every failure mode of a batch (transport errors after retries, timeouts,
unparsable or undersized answers, cancellation before dispatch) degrades that
batch to zero-confidence review mappings. Other batches are unaffected and the
call itself never raises for them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

import httpx

from core.classifier.parser import entries_to_mappings, parse_classifier_response
from core.classifier.prompt import build_request
from core.classifier.rate_limiter import IntervalRateLimiter, Sleeper
from core.classifier.transport import ClassifierTransport
from core.config.models import ClassifierSettings
from core.mapping.models import FieldMapping
from core.mapping.profile import PLACEHOLDER_VALUES
from core.patterns.models import Pattern
from core.utils.errors import ClassifierTransportError
from core.utils.log_events import log_event

logger = logging.getLogger("docfill.classifier")

_RETRYABLE_ERRORS = (ClassifierTransportError, httpx.HTTPError, asyncio.TimeoutError)


@dataclass
class BatchOutcome:
    batch_number: int
    mappings: list[FieldMapping]
    ok: bool
    attempts: int = 0
    issues: list[str] = field(default_factory=list)
    failure_reason: str | None = None


@dataclass
class ClassificationResult:
    """Concatenated batch results in input order."""

    mappings: list[FieldMapping] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    failed_batches: list[int] = field(default_factory=list)
    cancelled: bool = False

    @property
    def needs_review_count(self) -> int:
        return sum(1 for mapping in self.mappings if mapping.needs_review)


class BatchClassifier:
    """Classify patterns in bounded batches through a rate-limited transport."""

    def __init__(
        self,
        transport: ClassifierTransport,
        *,
        settings: ClassifierSettings | None = None,
        rate_limiter: IntervalRateLimiter | None = None,
        placeholders: Iterable[str] = PLACEHOLDER_VALUES,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._settings = settings or ClassifierSettings()
        self._rate_limiter = rate_limiter or IntervalRateLimiter(
            self._settings.min_interval_seconds
        )
        self._placeholders = frozenset(placeholders)
        self._sleep = sleep

    @property
    def settings(self) -> ClassifierSettings:
        return self._settings

    async def classify_batch(
        self,
        patterns: Sequence[Pattern],
        profile: Mapping[str, object],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ClassificationResult:
        """Classify ``patterns`` and return one mapping per pattern, in order.

        Args:
            patterns: Patterns to classify, sorted by document index.
            profile: Caller profile data; placeholder values are filtered out.
            cancel_event: When set, batches not yet sent are not dispatched and
                in-flight batches are allowed to finish.
        """

        batches = _partition(list(patterns), self._settings.batch_size)
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_batches)

        async def run(batch_number: int, batch: list[Pattern]) -> BatchOutcome:
            async with semaphore:
                return await self._classify_one(batch_number, batch, profile, cancel_event)

        outcomes = await asyncio.gather(
            *(run(number, batch) for number, batch in enumerate(batches))
        )

        result = ClassificationResult()
        for outcome in outcomes:
            result.mappings.extend(outcome.mappings)
            result.issues.extend(f"batch {outcome.batch_number}: {item}" for item in outcome.issues)
            if not outcome.ok:
                result.failed_batches.append(outcome.batch_number)
            if outcome.failure_reason == "cancelled":
                result.cancelled = True
        return result

    async def _classify_one(
        self,
        batch_number: int,
        batch: list[Pattern],
        profile: Mapping[str, object],
        cancel_event: asyncio.Event | None,
    ) -> BatchOutcome:
        request = build_request(
            batch,
            profile,
            context_chars=self._settings.context_chars,
            placeholders=self._placeholders,
        )
        max_attempts = self._settings.max_attempts
        last_error = ""

        for attempt in range(1, max_attempts + 1):
            if _is_cancelled(cancel_event):
                return self._failed(batch_number, batch, "cancelled", attempt - 1, last_error)

            await self._rate_limiter.acquire()
            if _is_cancelled(cancel_event):
                return self._failed(batch_number, batch, "cancelled", attempt - 1, last_error)

            log_event(
                logger,
                logging.INFO,
                "batch_dispatch",
                batch=batch_number,
                attempt=attempt,
                size=len(batch),
            )
            try:
                raw = await asyncio.wait_for(
                    self._transport.complete(request), timeout=self._settings.timeout_seconds
                )
            except _RETRYABLE_ERRORS as exc:
                last_error = _describe_error(exc)
                if _is_cancelled(cancel_event):
                    return self._failed(batch_number, batch, "cancelled", attempt, last_error)
                if attempt >= max_attempts:
                    break
                delay = self._settings.backoff_base_seconds * (2 ** (attempt - 1))
                log_event(
                    logger,
                    logging.WARNING,
                    "batch_retry",
                    batch=batch_number,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=last_error,
                )
                await self._sleep(delay)
                continue

            return self._parse(batch_number, batch, raw, attempt)

        return self._failed(batch_number, batch, "transport_error", max_attempts, last_error)

    def _parse(
        self, batch_number: int, batch: list[Pattern], raw: str, attempts: int
    ) -> BatchOutcome:
        parsed = parse_classifier_response(raw, len(batch))
        if not parsed.ok:
            reason = parsed.failure_reason or "parse_error"
            return self._failed(batch_number, batch, reason, attempts, "; ".join(parsed.issues))

        mappings = entries_to_mappings(batch, parsed.entries)
        log_event(
            logger,
            logging.INFO,
            "batch_done",
            batch=batch_number,
            attempts=attempts,
            compiled=sum(1 for mapping in mappings if mapping.should_compile),
            needs_review=sum(1 for mapping in mappings if mapping.needs_review),
        )
        return BatchOutcome(
            batch_number=batch_number,
            mappings=mappings,
            ok=True,
            attempts=attempts,
            issues=list(parsed.issues),
        )

    def _failed(
        self,
        batch_number: int,
        batch: list[Pattern],
        reason: str,
        attempts: int,
        detail: str,
    ) -> BatchOutcome:
        level = logging.INFO if reason == "cancelled" else logging.WARNING
        log_event(
            logger,
            level,
            "classify_cancelled" if reason == "cancelled" else "batch_failed",
            batch=batch_number,
            reason=reason,
            attempts=attempts,
            detail=detail,
        )
        issue = f"{reason}: {detail}" if detail else reason
        return BatchOutcome(
            batch_number=batch_number,
            mappings=[FieldMapping.review_required(pattern, reason=reason) for pattern in batch],
            ok=False,
            attempts=attempts,
            issues=[issue],
            failure_reason=reason,
        )


def _partition(patterns: list[Pattern], size: int) -> list[list[Pattern]]:
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    return [patterns[start : start + size] for start in range(0, len(patterns), size)]


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _describe_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    return f"{type(exc).__name__}: {exc}"
