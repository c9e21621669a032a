"""
Stock Verification

Checks stock items against mailbox-reading services and classifies each
as true / false / error, then bulk-deletes a chosen result class.
"""

from stockroom.verification.content_parser import extract_column, parse_graph_account, resolve_identifier
from stockroom.verification.engine import VerificationEngine, matches_filters, stock_ids_with_status
from stockroom.verification.sources import MailSource, build_sources

__all__ = [
    "VerificationEngine",
    "matches_filters",
    "stock_ids_with_status",
    "extract_column",
    "parse_graph_account",
    "resolve_identifier",
    "MailSource",
    "build_sources",
]
