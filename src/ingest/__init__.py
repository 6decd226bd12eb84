"""Inbound mail ingestion: normalization, thread resolution, state mutation, pipeline."""
