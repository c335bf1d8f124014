"""Chatmeter to Zendesk review bridge."""

__version__ = "1.0.0"
