"""Application layer: the administrative facade and its request schemas."""
