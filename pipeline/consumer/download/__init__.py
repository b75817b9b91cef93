"""Download stages: fetch artifacts found by the crawlers."""
