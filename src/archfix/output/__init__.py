"""Refactored output paths and atomic writes."""
