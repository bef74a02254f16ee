"""Command-line interface for image-pinner."""
