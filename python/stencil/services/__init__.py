"""Orchestration layer.

Routes may not contain business logic or call the repository directly - they
must call these functions. Every operation takes the request context first and
checks it before doing any work.
"""
