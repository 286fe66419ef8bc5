"""Aggregation helpers.

This package normalizes grant amounts to the reference currency, builds the
two derived beneficiary views, and computes the report catalogue consumed by
the dashboard. Report tables are small enough to compute eagerly and publish
as CSV files or read-optimized MongoDB collections.
"""
