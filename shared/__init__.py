"""Configuration and logging shared by every pipeline process."""
