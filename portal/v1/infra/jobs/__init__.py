"""
Durable job queue drained by a scheduled trigger.

This package provides:
- A jobs table with an atomic claim, so overlapping triggers never run a job twice
- Registry-based handlers with a validated payload model per job type
- Retries with capped exponential backoff, then dead-lettering
- Recovery of jobs left in processing by an invocation that died
"""
