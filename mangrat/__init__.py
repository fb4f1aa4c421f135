"""Mangrat chat backend: sessions, conversational memory and plan-tiered prompts."""

__version__ = "1.0.0"
