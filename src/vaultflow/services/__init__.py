"""External service interfaces and implementations."""
