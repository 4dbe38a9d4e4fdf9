"""Concert Agent - batch ingestion of concert and comedy listings."""

__version__ = "0.1.0"
