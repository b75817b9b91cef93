"""Analysis stages: measure or analyze downloaded artifacts."""
