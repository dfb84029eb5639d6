"""
Core shared utilities for pman.

- db: pooled SQLite connections and the transactional ``connect()`` context
- errors: client (4xx) and internal (5xx) error hierarchy
- logging_config: JSON logging for the ``pman`` logger tree
- timestamps: UTC timestamp helpers used for persisted values
"""
