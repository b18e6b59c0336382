"""
Gunicorn configuration for the Olympia live engine.

Run with: gunicorn -c deploy/gunicorn.conf.py olympia.main:app

Several workers need REALTIME_BACKEND=redis so every viewer socket hears
every change, whichever worker committed it.
"""
import os
import multiprocessing

# Server socket
bind = os.environ.get("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 120
keepalive = 5

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "olympia"

# Server mechanics
daemon = False

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    """Warn when several workers would each keep a private in-memory bus."""
    if workers > 1 and os.environ.get("REALTIME_BACKEND", "memory").lower() != "redis":
        server.log.warning("Multiple workers with REALTIME_BACKEND=memory: viewers only see their own worker's events")
