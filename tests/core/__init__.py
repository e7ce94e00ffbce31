"""Tests for the MixDeck core."""
