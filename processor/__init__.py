"""Background aggregation: grouped statistics engine, job handlers and the worker loop."""
