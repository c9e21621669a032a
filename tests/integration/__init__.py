"""
Integration tests for the stockroom console.

These tests run the fulfillment and verification engines against a moto
DynamoDB table with HTTP services served by httpx.MockTransport.
"""
