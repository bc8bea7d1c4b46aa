"""Gunicorn settings for the insight valuation API, overridable per container via GUNICORN_* env vars."""

from __future__ import annotations

import logging
import multiprocessing
import os

wsgi_app = "insightvalue.wsgi:app"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
proc_name = "insightvalue"

# Adjustment reads share no mutable state; insight writes take per-insight
# locks in-process and FOR UPDATE row locks across workers.
worker_class = "gthread"
workers = int(os.environ.get("GUNICORN_WORKERS", str(min(multiprocessing.cpu_count() * 2, 8))))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
max_requests = int(os.environ.get("GUNICORN_MAX_REQUESTS", "5000"))
max_requests_jitter = 250

# Batch adjustments over a full watchlist are the slowest requests.
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "120"))
graceful_timeout = 30
keepalive = 5

accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("GUNICORN_LOGLEVEL", "info")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus'

forwarded_allow_ips = os.environ.get("GUNICORN_FORWARDED_ALLOW_IPS", "127.0.0.1")


def when_ready(server):
    logging.getLogger("gunicorn.error").info(
        "insightvalue ready on %s with %s workers x %s threads", bind, workers, threads
    )
