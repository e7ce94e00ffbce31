"""Spotify backend, remote controlling a Spotify Connect device through the Web API."""

from .adapter import SpotifyAdapter

__all__ = ["SpotifyAdapter"]
