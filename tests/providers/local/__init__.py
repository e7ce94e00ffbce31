"""Tests for the local files backend."""
