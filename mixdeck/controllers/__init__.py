"""Controllers of the MixDeck hub."""
