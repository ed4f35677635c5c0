"""gunicorn settings: `gunicorn statichost.main:app -c gunicorn_conf.py`."""

import os

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.getenv("WEB_CONCURRENCY", 2))
worker_class = "uvicorn.workers.UvicornWorker"
# Git clones and ZIP extraction run inside the request
timeout = int(os.getenv("GUNICORN_TIMEOUT", 120))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", 5))
# Upload bodies are streamed by uvicorn; only the request line and headers are capped here
limit_request_line = int(os.getenv("GUNICORN_LIMIT_REQUEST_LINE", 8190))

accesslog = "-"
errorlog = "-"
