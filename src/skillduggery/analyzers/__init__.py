"""Static, behavioral and meta analyzers."""
