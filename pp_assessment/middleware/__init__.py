"""Request middleware: logging, timing and error reporting."""
