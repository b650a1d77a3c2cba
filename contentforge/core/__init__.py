"""Configuration, logging, auth and retry primitives."""
