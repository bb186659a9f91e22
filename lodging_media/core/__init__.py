"""Core ports for the media pipeline."""
