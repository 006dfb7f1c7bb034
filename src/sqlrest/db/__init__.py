"""Database drivers, statement execution and shared data types."""
