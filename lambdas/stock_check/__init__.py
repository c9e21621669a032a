"""
StockCheck Lambda

Batch verification of stock items against mailbox-reading services, for
operators and for scheduled runs authenticated with a shared secret.
"""

from lambdas.stock_check.handler import lambda_handler

__all__ = ["lambda_handler"]
