"""Tests for MixDeck."""
