"""Request-side services: batch ingestion and ad-hoc analytics."""
