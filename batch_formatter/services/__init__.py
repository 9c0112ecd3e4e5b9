"""Formatting services: mapping, record matching, output rendering and run orchestration."""
