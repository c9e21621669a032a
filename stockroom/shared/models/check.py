"""
Verification Models

Pydantic models for verification requests, mailbox messages and results.
The request/response field names here are the console's wire contract.
"""

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stockroom.shared.config import Settings
from stockroom.shared.exceptions import CheckValidationError


class CheckScope(str, Enum):
    """Which stock items a verification run covers."""

    PRODUCT = "product"
    SELECTED = "selected"


class CheckSource(str, Enum):
    """Mailbox-reading service used for a verification run."""

    TEMPMAIL = "tempmail"
    """Generic inbox, addressed by email."""

    TINYHOST = "tinyhost"
    """Alternate inbox, addressed by email."""

    HOTMAIL = "hotmail"
    """Graph mailbox, needs a refresh-token credential record."""


class CheckStatus(str, Enum):
    """Per-item verification outcome."""

    TRUE = "true"
    FALSE = "false"
    ERROR = "error"


class MailMessage(BaseModel):
    """Normalized message summary returned by every mailbox source."""

    model_config = ConfigDict(frozen=True)

    subject: str = ""
    from_address: str = ""


class GraphAccount(BaseModel):
    """Credential record parsed from a `Mail|Password|Refresh_token|ClientID` column."""

    model_config = ConfigDict(frozen=True)

    email: str
    password: str = ""
    refresh_token: str
    client_id: str = ""


class MailTarget(BaseModel):
    """What a source needs to read a mailbox: the address, plus credentials for Graph."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    account: GraphAccount | None = None


class CheckResult(BaseModel):
    """Verification outcome for one stock item."""

    model_config = ConfigDict(frozen=True)

    stock_id: int
    identifier: str = ""
    content: str = ""
    status: CheckStatus
    error: str | None = None

    def to_response(self) -> dict[str, Any]:
        """Wire shape; `error` is omitted when absent."""
        return self.model_dump(mode="json", exclude_none=True)


class CheckSummary(BaseModel):
    """Aggregated verification run output."""

    model_config = ConfigDict(frozen=True)

    total: int
    true_count: int
    false_count: int
    error_count: int
    results: list[CheckResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[CheckResult]) -> "CheckSummary":
        """Sort by stock id and compute the aggregate counts."""
        ordered = sorted(results, key=lambda r: r.stock_id)
        return cls(
            total=len(ordered),
            true_count=sum(1 for r in ordered if r.status is CheckStatus.TRUE),
            false_count=sum(1 for r in ordered if r.status is CheckStatus.FALSE),
            error_count=sum(1 for r in ordered if r.status is CheckStatus.ERROR),
            results=ordered,
        )

    @property
    def suggested_delete_status(self) -> CheckStatus:
        """Result class the console preselects for bulk deletion."""
        if self.error_count:
            return CheckStatus.ERROR
        if self.false_count:
            return CheckStatus.FALSE
        return CheckStatus.TRUE

    def to_response(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "true_count": self.true_count,
            "false_count": self.false_count,
            "error_count": self.error_count,
            "results": [r.to_response() for r in self.results],
        }


def _to_number(value: Any) -> float | None:
    """Lenient numeric coercion for JSON request fields."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def to_positive_int(value: Any) -> int | None:
    number = _to_number(value)
    if number is None or not math.isfinite(number) or not number.is_integer() or number <= 0:
        return None
    return int(number)


class CheckRequest(BaseModel):
    """
    Validated verification request.

    Build it with `from_payload` from the raw JSON body; direct construction
    assumes the values were already validated.
    """

    model_config = ConfigDict(frozen=True)

    scope: CheckScope
    source: CheckSource
    sender_filter: str = ""
    subject_filter: str = ""
    mail_column_index: int = Field(default=1, ge=1)
    concurrency: int = Field(default=20, ge=1)
    product_id: int | None = None
    selected_stock_ids: list[int] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any], settings: Settings) -> "CheckRequest":
        """
        Validate a wire request body.

        Args:
            payload: JSON body with camelCase keys
            settings: Limits for column index, concurrency and selection size

        Returns:
            CheckRequest with filters lower-cased and concurrency clamped

        Raises:
            CheckValidationError: On any malformed field
        """
        if not isinstance(payload, dict):
            raise CheckValidationError("Request body must be a JSON object.")

        try:
            scope = CheckScope(payload.get("scope"))
        except ValueError:
            raise CheckValidationError("Invalid scope.", field="scope") from None

        try:
            source = CheckSource(payload.get("source"))
        except ValueError:
            raise CheckValidationError("Invalid source.", field="source") from None

        sender_filter = str(payload.get("senderFilter") or "").strip().lower()
        subject_filter = str(payload.get("subjectFilter") or "").strip().lower()

        raw_index = _to_number(payload.get("mailColumnIndex"))
        if raw_index is not None and math.isfinite(raw_index) and raw_index.is_integer():
            mail_column_index = int(raw_index)
        else:
            mail_column_index = 1
        max_index = settings.check_max_mail_column_index
        if mail_column_index < 1 or mail_column_index > max_index:
            raise CheckValidationError(
                f"mailColumnIndex must be within 1..{max_index}.",
                field="mailColumnIndex",
            )

        raw_concurrency = _to_number(payload.get("concurrency"))
        if raw_concurrency is None or not math.isfinite(raw_concurrency):
            requested = settings.check_default_concurrency
        else:
            requested = math.floor(raw_concurrency)
        concurrency = max(1, min(settings.check_max_concurrency, requested))

        product_id = None
        selected_stock_ids: list[int] = []
        if scope is CheckScope.PRODUCT:
            product_id = to_positive_int(payload.get("productId"))
            if product_id is None:
                raise CheckValidationError("Invalid productId.", field="productId")
        else:
            raw_ids = payload.get("selectedStockIds")
            if isinstance(raw_ids, list):
                selected_stock_ids = [
                    stock_id
                    for stock_id in (to_positive_int(v) for v in raw_ids)
                    if stock_id is not None
                ]
            if not selected_stock_ids:
                raise CheckValidationError(
                    "selectedStockIds is empty.",
                    field="selectedStockIds",
                )
            if len(selected_stock_ids) > settings.check_max_selected_ids:
                raise CheckValidationError(
                    f"At most {settings.check_max_selected_ids} stock items per check.",
                    field="selectedStockIds",
                )

        return cls(
            scope=scope,
            source=source,
            sender_filter=sender_filter,
            subject_filter=subject_filter,
            mail_column_index=mail_column_index,
            concurrency=concurrency,
            product_id=product_id,
            selected_stock_ids=selected_stock_ids,
        )
