"""Core domain types: enums, schemas and the error taxonomy."""
