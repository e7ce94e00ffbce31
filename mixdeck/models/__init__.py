"""Models used by MixDeck."""
