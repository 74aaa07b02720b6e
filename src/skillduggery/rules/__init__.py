"""Rule parsing, rule pack verification, and the bundled default rules."""
