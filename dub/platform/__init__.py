"""Collaborator interfaces and platform adapters."""
