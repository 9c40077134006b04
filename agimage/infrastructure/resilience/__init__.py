"""API Resilience Implementations.

Contains the account scheduler (which account serves the next request) and
the resilient request executor (how one request is retried across endpoints).
Bounded Context: API Resilience
"""
