"""Configuration parsing, validation and logging setup for hybridradio."""
