"""Collaborators invoked by workflow actions."""
