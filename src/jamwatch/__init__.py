"""Crowd-sourced road status reports: ingestion, aggregation and forecasting."""

__version__ = "0.1.0"
