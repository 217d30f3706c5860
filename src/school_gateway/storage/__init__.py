"""Database access: engine, table definitions and tenant-scoped reads."""
