"""HTTP API for operating the migration engine."""
