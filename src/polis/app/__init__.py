"""Application layer: configuration, logging and the composition root."""
