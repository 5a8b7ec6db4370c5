"""Shared persistence layer for the soalbank question bank."""
