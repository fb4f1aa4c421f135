"""Boundary to the external text-generation service."""
