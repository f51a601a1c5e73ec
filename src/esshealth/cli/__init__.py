"""Command line interface for ESSHealth."""
