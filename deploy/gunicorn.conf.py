"""
deploy/gunicorn.conf.py
Gunicorn settings for the HackJudge API.

    gunicorn -c deploy/gunicorn.conf.py hackjudge.main:app

The in-memory broadcast adapter is per process: run a single worker
unless clients can tolerate updates only from the worker that took the write.
"""
import os

wsgi_app = "hackjudge.main:app"

# Server socket
bind = os.environ.get("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.environ.get("WEB_CONCURRENCY", "1"))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60
graceful_timeout = 30
keepalive = 5

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(t)s "%(r)s" %(s)s %(b)s %(D)s'

# Process naming
proc_name = "hackjudge"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    server.log.info(f"HackJudge ready with {workers} worker(s) on {bind}")
