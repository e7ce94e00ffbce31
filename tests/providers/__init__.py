"""Tests for the MixDeck backends."""
