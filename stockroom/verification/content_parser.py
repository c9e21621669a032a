"""
Stock Content Parser

Parses a stock item's comma-delimited payload into positional fields and
resolves the mailbox identifier a verification source needs.

Two identifier flavors exist:
- direct email: the column holds (or embeds) an email address
- structured credential: the column is a `|`-delimited Graph account record
  `Mail|Password|Refresh_token|ClientID`, of which 2, 3 or 4 segments are accepted
"""

import re
from typing import NamedTuple

from stockroom.shared.exceptions import IdentifierExtractionError
from stockroom.shared.models.check import CheckSource, GraphAccount, MailTarget

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMBEDDED_EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
CLIENT_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# A second segment longer than this is taken for a refresh token, not a password.
REFRESH_TOKEN_MIN_LENGTH = 20

GRAPH_ACCOUNT_FORMAT = "Mail|Password|Refresh_token|ClientID"


class ColumnValue(NamedTuple):
    value: str
    column_count: int


def extract_column(content: str, column_index: int) -> ColumnValue:
    """
    Return the trimmed field at 1-based `column_index` and the field count.

    Out-of-range indexes yield an empty value; empty content has zero columns.
    """
    line = (content or "").strip()
    if not line:
        return ColumnValue("", 0)
    columns = [part.strip() for part in line.split(",")]
    position = column_index - 1
    value = columns[position] if 0 <= position < len(columns) else ""
    return ColumnValue(value, len(columns))


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match((value or "").strip()))


def looks_like_client_id(value: str) -> bool:
    return bool(CLIENT_ID_PATTERN.match((value or "").strip()))


def extract_email(value: str) -> str:
    """
    Resolve an email from a column value.

    Returns the lower-cased address, the first embedded address when the value
    is not itself an email, or "" when none can be found.
    """
    text = (value or "").strip()
    if not text:
        return ""
    if is_valid_email(text):
        return text.lower()
    matched = EMBEDDED_EMAIL_PATTERN.search(text)
    return matched.group(0).lower() if matched else ""


def parse_graph_account(raw_line: str) -> GraphAccount | None:
    """
    Parse a `|`-delimited Graph account record.

    Segment layouts:
        4+  email|password|refresh_token|client_id
        3   email|refresh_token|client_id   when the 2nd segment is long and the 3rd is a UUID
            email|password|refresh_token    otherwise
        2   email|refresh_token

    The 3-segment case is ambiguous and decided by field shape only.

    Returns:
        GraphAccount, or None when the email is invalid or no refresh token resolves
    """
    line = (raw_line or "").strip()
    if not line:
        return None

    parts = [part.strip() for part in line.split("|")]
    if len(parts) < 2:
        return None

    email = parts[0].lower()
    if not is_valid_email(email):
        return None

    password = ""
    client_id = ""
    if len(parts) >= 4:
        password, refresh_token, client_id = parts[1], parts[2], parts[3]
    elif len(parts) == 3:
        second, third = parts[1], parts[2]
        if len(second) > REFRESH_TOKEN_MIN_LENGTH and looks_like_client_id(third):
            refresh_token, client_id = second, third
        else:
            password, refresh_token = second, third
    else:
        refresh_token = parts[1]

    if not refresh_token:
        return None

    return GraphAccount(
        email=email,
        password=password,
        refresh_token=refresh_token,
        client_id=client_id,
    )


def resolve_identifier(content: str, column_index: int, source: CheckSource) -> MailTarget:
    """
    Resolve the mailbox target of a stock item for the given source.

    Raises:
        IdentifierExtractionError: With a human-readable reason when the item
            cannot be checked (empty stock, empty column, malformed credential
            record, no email found)
    """
    if not (content or "").strip():
        raise IdentifierExtractionError("Stock content is empty.")

    value, column_count = extract_column(content, column_index)
    if not value:
        raise IdentifierExtractionError(
            f"No data in mail column #{column_index} (line has {column_count} columns)."
        )

    if source is CheckSource.HOTMAIL:
        account = parse_graph_account(value)
        if account is None:
            raise IdentifierExtractionError(
                f"Malformed Hotmail record in mail column #{column_index}. "
                f"Expected {GRAPH_ACCOUNT_FORMAT}.",
                identifier=value,
            )
        return MailTarget(identifier=account.email, account=account)

    email = extract_email(value)
    if not email:
        raise IdentifierExtractionError(
            f"No valid email found in mail column #{column_index}.",
            identifier=value,
        )
    return MailTarget(identifier=email)
