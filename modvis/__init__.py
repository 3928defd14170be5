"""Protracker MOD replay, WAV rendering and an in-memory waveform visualizer."""

__version__ = "0.1.0"