"""HomeScout - MLS query interpretation, relaxed retrieval and comps pricing."""

__version__ = "1.0.0"
