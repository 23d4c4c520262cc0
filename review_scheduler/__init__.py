"""SM-2 review scheduling engine."""
