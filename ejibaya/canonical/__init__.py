"""Field normalization and delimited-text codec."""
