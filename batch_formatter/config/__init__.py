"""YAML configuration loading."""
