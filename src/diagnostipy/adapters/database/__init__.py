"""Database adapters: query monitoring and EXPLAIN collection."""
