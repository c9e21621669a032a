"""
Verification Engine

Checks a scope of stock items against a mailbox source and classifies each
item as true (a matching message exists), false, or error.

Flow:
1. Validate the request (CheckRequest.from_payload)
2. Load the stock population (whole product, paged and capped; or explicit ids)
3. Resolve each item's mailbox identifier; failures become error results
4. Fan out source calls in fixed windows of `concurrency`
5. Classify against sender/subject filters
6. Sort by stock id and aggregate
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable

import structlog

from stockroom.shared.config import Settings, get_settings
from stockroom.shared.exceptions import CheckValidationError, IdentifierExtractionError
from stockroom.shared.models.check import (
    CheckRequest,
    CheckResult,
    CheckScope,
    CheckSource,
    CheckStatus,
    CheckSummary,
    MailMessage,
    MailTarget,
)
from stockroom.shared.models.dynamo import StockItem
from stockroom.shared.tools.dynamodb import InventoryStore
from stockroom.verification.content_parser import resolve_identifier
from stockroom.verification.sources import MailSource, build_sources

log = structlog.get_logger()


def matches_filters(
    messages: list[MailMessage],
    sender_filter: str,
    subject_filter: str,
) -> bool:
    """
    True iff some message matches every non-empty filter.

    Matching is a case-insensitive substring test on the sender address and
    the subject. With both filters empty any message matches; an empty
    mailbox never does.
    """
    if not messages:
        return False
    sender_filter = sender_filter.lower()
    subject_filter = subject_filter.lower()
    return any(
        (not sender_filter or sender_filter in message.from_address.lower())
        and (not subject_filter or subject_filter in message.subject.lower())
        for message in messages
    )


def stock_ids_with_status(results: Iterable[CheckResult], status: CheckStatus) -> list[int]:
    """Distinct stock ids of one result class, in result order."""
    return list(dict.fromkeys(r.stock_id for r in results if r.status is status))


class VerificationEngine:
    """
    Batch verification of stock items against mailbox sources.

    Usage:
        engine = VerificationEngine()
        summary = engine.run_check({"scope": "product", "productId": 7, "source": "tempmail"})
    """

    def __init__(
        self,
        store: InventoryStore | None = None,
        sources: dict[CheckSource, MailSource] | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._store = store or InventoryStore(settings=self._settings)
        self._sources = sources if sources is not None else build_sources(self._settings)

    def run_check(self, request: CheckRequest | dict[str, Any]) -> CheckSummary:
        """
        Run one verification pass.

        Args:
            request: Validated CheckRequest or raw wire payload

        Returns:
            CheckSummary with one result per loaded stock item

        Raises:
            CheckValidationError: Malformed request or population over the cap
            DynamoDBError: Stock could not be loaded
        """
        if not isinstance(request, CheckRequest):
            request = CheckRequest.from_payload(request, self._settings)

        source = self._sources.get(request.source)
        if source is None:
            raise CheckValidationError("Invalid source.", field="source")

        start_time = time.time()
        rows = self._load_population(request)

        log.info(
            "verification_started",
            scope=request.scope.value,
            source=request.source.value,
            product_id=request.product_id,
            item_count=len(rows),
            concurrency=request.concurrency,
        )

        results: list[CheckResult] = []
        checkable: list[tuple[StockItem, MailTarget]] = []
        for row in rows:
            try:
                target = resolve_identifier(row.content, request.mail_column_index, request.source)
            except IdentifierExtractionError as e:
                results.append(
                    CheckResult(
                        stock_id=row.stock_id,
                        identifier=e.identifier,
                        content=row.content.strip(),
                        status=CheckStatus.ERROR,
                        error=e.message,
                    )
                )
                continue
            checkable.append((row, target))

        results.extend(self._fan_out(checkable, source, request))

        summary = CheckSummary.from_results(results)
        log.info(
            "verification_completed",
            total=summary.total,
            true_count=summary.true_count,
            false_count=summary.false_count,
            error_count=summary.error_count,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return summary

    def delete_by_status(self, summary: CheckSummary, status: CheckStatus | str) -> int:
        """
        Bulk-delete every stock item of one result class.

        Returns:
            Number of stock ids deleted
        """
        if isinstance(status, str):
            status = CheckStatus(status)
        stock_ids = stock_ids_with_status(summary.results, status)
        if not stock_ids:
            log.info("bulk_delete_nothing_to_delete", status=status.value)
            return 0
        deleted = self._store.delete_stock_items(stock_ids)
        log.info("bulk_delete_completed", status=status.value, deleted=deleted)
        return deleted

    def _load_population(self, request: CheckRequest) -> list[StockItem]:
        if request.scope is CheckScope.SELECTED:
            return self._store.get_stock_items(request.selected_stock_ids)

        max_items = self._settings.check_max_items
        rows: list[StockItem] = []
        for page in self._store.iter_product_stock_pages(
            request.product_id,
            page_size=self._settings.stock_page_size,
        ):
            rows.extend(page)
            if len(rows) > max_items:
                log.warning(
                    "verification_population_over_cap",
                    product_id=request.product_id,
                    max_items=max_items,
                )
                raise CheckValidationError(
                    f"Stock count exceeds the limit of {max_items} rows.",
                    field="productId",
                )
        return rows

    def _fan_out(
        self,
        checkable: list[tuple[StockItem, MailTarget]],
        source: MailSource,
        request: CheckRequest,
    ) -> list[CheckResult]:
        """Check items window by window; a window finishes before the next starts."""
        if not checkable:
            return []

        width = request.concurrency
        results: list[CheckResult] = []
        with ThreadPoolExecutor(max_workers=width) as executor:
            for start in range(0, len(checkable), width):
                window = checkable[start:start + width]
                results.extend(
                    executor.map(
                        lambda pair: self._check_one(pair[0], pair[1], source, request),
                        window,
                    )
                )
                log.debug(
                    "verification_window_done",
                    completed=start + len(window),
                    total=len(checkable),
                )
        return results

    def _check_one(
        self,
        row: StockItem,
        target: MailTarget,
        source: MailSource,
        request: CheckRequest,
    ) -> CheckResult:
        """Never raises: any failure becomes an error result for this item only."""
        content = row.content.strip()
        try:
            messages = source.fetch_messages(target)
            matched = matches_filters(messages, request.sender_filter, request.subject_filter)
        except Exception as e:
            log.warning(
                "stock_check_failed",
                stock_id=row.stock_id,
                source=request.source.value,
                error=str(e),
            )
            return CheckResult(
                stock_id=row.stock_id,
                identifier=target.identifier,
                content=content,
                status=CheckStatus.ERROR,
                error=str(e) or "Stock could not be checked.",
            )
        return CheckResult(
            stock_id=row.stock_id,
            identifier=target.identifier,
            content=content,
            status=CheckStatus.TRUE if matched else CheckStatus.FALSE,
        )
