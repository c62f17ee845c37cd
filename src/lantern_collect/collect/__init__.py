"""Trace collection engine.

Remote WebPageTest runs are cheap to queue, so every remote sample for every
URL is submitted up front and left to the service's own admission control.
Local Lighthouse runs share one machine and must never overlap, so they are
driven one at a time by the orchestrator.  A URL's local runs only begin once
its first WebPageTest run is actually executing, which keeps the two
measurement conditions close together in time without locking them in step.
"""
