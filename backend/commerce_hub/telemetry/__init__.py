"""
Telemetry Module
================

Observability for the sync engine.

Components:
- sentry.py: Error tracking for adapters that exhaust their retries and
  failed scheduled organization syncs

Usage:
    from commerce_hub.telemetry import init_sentry, capture_exception
"""

from commerce_hub.telemetry.sentry import capture_exception, init_sentry

__all__ = ["capture_exception", "init_sentry"]
