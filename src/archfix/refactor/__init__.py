"""Validated refactoring core: parser, model loop, aggregation, merge, orchestration."""
