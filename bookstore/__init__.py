"""Cache-aside data access for the book table."""
