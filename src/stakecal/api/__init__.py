"""API components - snapshot aggregator and the FastAPI application."""

from stakecal.api.data_api import DataAggregator

__all__ = ["DataAggregator"]
