"""Tests for the mpv engine."""
