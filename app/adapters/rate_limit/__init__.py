"""Rate limiting adapters.

Counter stores behind a small interface so the limiter can run on process
memory during development and on Redis when several workers must share one
quota.
"""
