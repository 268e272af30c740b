# backend/gunicorn_conf.py

# Gunicorn config file: gunicorn -c gunicorn_conf.py app.main:app

import os

bind = os.getenv("BIND", "0.0.0.0:8000")
# In-flight processes live in the session store. With the in-memory backend
# every worker has its own store, so run more than one worker only with
# SESSION_STORE_BACKEND=redis.
workers = int(os.getenv("WEB_CONCURRENCY", "1"))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60

# Settings for running behind a reverse proxy like Nginx
forwarded_allow_ips = "*"

# --- Logging ---
# Access and error logs go to stdout/stderr; application logs are JSON via structlog
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
