"""Generic helpers used by MixDeck."""
