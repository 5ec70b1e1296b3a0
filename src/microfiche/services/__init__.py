"""Service layer for Microfiche."""
