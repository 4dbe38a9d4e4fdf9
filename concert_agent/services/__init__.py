"""External services used by the ingestion engine."""
