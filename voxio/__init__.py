"""Gapless WAVE playback engine with seeking, resampling and a sample tap."""

__version__ = "0.1.0"

__all__ = ["decoder", "engine", "errors", "resampler", "state", "tap", "worker"]