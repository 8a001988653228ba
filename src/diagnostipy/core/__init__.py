"""Pure diagnostics logic: models, configuration and aggregation."""
