"""
SDK for SubWatch.

Provides programmatic access to subscription scoring and dashboard stats.
"""

from .tracker import SubscriptionTracker

__all__ = ["SubscriptionTracker"]
