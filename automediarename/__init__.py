"""Scan a media tree, rename matching files and recompress JPEGs safely."""

__version__ = "0.1.0"
