# src/housing/errors.py
from __future__ import annotations

__all__ = [
    "HousingError",
    "ParseError",
    "DomainError",
    "SchemaError",
    "ConfigError",
]


class HousingError(ValueError):
    """Base class for every error raised by the feature pipeline."""


class ParseError(HousingError):
    """A raw value could not be parsed (e.g. a malformed sale date)."""


class DomainError(HousingError):
    """A parsed value lies outside its valid domain (e.g. price <= 0)."""


class SchemaError(HousingError):
    """
    Column-set or categorical-level mismatch.

    Raised for a missing required column, a categorical level unseen at
    training time, or a train/holdout schema mismatch. Fatal to the run.
    """


class ConfigError(HousingError):
    """Invalid pipeline configuration (clustering, buckets, season map, ...). Fatal."""
