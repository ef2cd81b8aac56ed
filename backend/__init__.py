"""HTTP surface for the chronicle engine."""
