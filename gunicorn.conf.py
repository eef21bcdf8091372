# gunicorn_conf.py
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
# verificatiesessies leven in het geheugen van één worker
workers = int(os.getenv("WEB_CONCURRENCY", "1"))
threads = int(os.getenv("WEB_THREADS", "4"))
worker_class = "uvicorn.workers.UvicornWorker"
wsgi_app = "lizexpress.main:app"
preload_app = False
timeout = 120
graceful_timeout = 30
keepalive = 5
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
