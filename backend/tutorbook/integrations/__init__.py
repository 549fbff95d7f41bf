"""Adapters for collaborators the core talks to but does not own."""
