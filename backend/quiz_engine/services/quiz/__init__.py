"""Quiz domain services: question selection, scoring and session lifecycle.

This package holds the engine's rules so that HTTP routes, socket handlers
and CLI commands import the same logic instead of re-implementing it.
"""
