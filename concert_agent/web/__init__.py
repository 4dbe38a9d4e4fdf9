"""HTTP trigger surface for the ingestion engine."""
