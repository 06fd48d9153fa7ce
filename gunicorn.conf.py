import os

# gunicorn -c gunicorn.conf.py
wsgi_app = "main:app"
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
worker_class = "uvicorn.workers.UvicornWorker"
# Sync runs are long and I/O bound; a few workers with threads are enough
workers = int(os.getenv("GUNICORN_WORKERS", "2"))
threads = int(os.getenv("GUNICORN_THREADS", "4"))
# A full apply walks the whole Drive tree sequentially
timeout = int(os.getenv("GUNICORN_TIMEOUT", "600"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "60"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
accesslog = "-"
errorlog = "-"
forwarded_allow_ips = "*"
capture_output = True


def worker_exit(server, worker):
    server.log.info("Sync worker exiting", extra={"pid": worker.pid})
