"""
Adapters for external services.

Currently provides the HTTP client for the decisions service.
"""
