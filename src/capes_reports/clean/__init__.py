"""Cleaning utilities for the pipeline.

Provides functions to normalize text and numeric fields of the CAPES exports
and to validate cleaned rows against the Pydantic models.
"""
