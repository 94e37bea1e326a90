"""Pattern-based extraction from unstructured text."""
