"""Crawler stages: discover work and queue downloads."""
