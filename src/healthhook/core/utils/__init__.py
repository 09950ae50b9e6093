"""Small shared utilities (logging setup, async bridging)."""
