"""Long-running consumer processes."""
