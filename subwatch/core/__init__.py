"""
Core modules for SubWatch.

This package contains the scoring engine, the dashboard aggregator and the
usage window definitions they depend on.
"""
