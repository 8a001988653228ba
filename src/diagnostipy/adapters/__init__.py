"""Adapters connecting the core to databases, logging, storage and web frameworks."""
