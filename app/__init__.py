"""Stopboard backend: curated stop sets and live departure boards."""

__version__ = "0.1.0"
