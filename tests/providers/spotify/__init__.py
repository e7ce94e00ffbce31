"""Tests for the Spotify backend."""
