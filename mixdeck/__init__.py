"""MixDeck: one playback session over local files, Spotify and YouTube."""

from .hub import MixDeck

__all__ = ["MixDeck"]
