"""Taleweave: streaming narrative sessions with missions and recovery."""
