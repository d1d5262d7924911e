"""Provider adapters and model catalog."""
