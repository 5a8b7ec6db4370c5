"""Ingestion, classification and taxonomy migration for the soalbank question bank."""

__version__ = "0.1.0"
