"""Request middleware: logging, timing, rate limits."""
