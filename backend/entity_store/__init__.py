"""
Entity Store

Generic persistent-entity repository over a remote document store with
retry-with-backoff, TTL caching, validation-gated writes and batch operations.
"""

__version__ = "0.1.0"
