"""Bounded-concurrency orchestrator for per-image batch jobs.

Why not ``multiprocessing.Pool`` / ``ProcessPoolExecutor``?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Both reuse long-lived worker processes and offer no way to stop a single
task that hangs: a stuck job either blocks its worker forever or takes the
whole pool down with it. Here every attempt gets a fresh process that is
discarded afterwards, so:

- A job that exceeds its timeout is killed without affecting the others,
  and any message it sends afterwards is dropped with its pipe.
- A crash inside native image code surfaces as an abnormal exit of one
  unit instead of a broken pool.
- Retries are plain re-admissions of a new descriptor; no state survives
  from the failed attempt.

The scheduler is a single-threaded event loop over pipe readers and
process sentinels (``multiprocessing.connection.wait``), so admission,
timeout handling and result aggregation never race with each other.
"""
