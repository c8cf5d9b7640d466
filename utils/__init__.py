"""Utility functions for the task analytics engine."""

from .date_utils import parse_date, parse_datetime, format_date, to_epoch_ms

__all__ = ["parse_date", "parse_datetime", "format_date", "to_epoch_ms"]
