"""vmstat-style monitor: counter records, delta engine and sampler loop."""
