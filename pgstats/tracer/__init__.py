"""Wait-event tracer: follows one backend and prints a histogram per query."""
