"""HTML rendering of debug reports."""
