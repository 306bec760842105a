"""Artifact and cache servers, configuration readers and plan listings for running workflow jobs locally."""

__version__ = "0.1.0"