"""HTTP surface: ingestion, analytics, job inspection and health endpoints."""
