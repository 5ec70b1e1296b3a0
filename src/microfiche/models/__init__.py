"""Data models for Microfiche."""
