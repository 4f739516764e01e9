"""Kernel layer: remote-store models and the append-only event log."""
