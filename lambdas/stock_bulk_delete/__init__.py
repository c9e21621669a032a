"""
StockBulkDelete Lambda

Bulk deletion of stock items, by explicit id list or by one result class of
a verification run.
"""

from lambdas.stock_bulk_delete.handler import lambda_handler

__all__ = ["lambda_handler"]
