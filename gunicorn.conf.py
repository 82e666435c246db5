# gunicorn.conf.py
# gunicorn -c gunicorn.conf.py fileshare.main:app
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
workers = int(os.getenv("WEB_CONCURRENCY", "2"))  # alle state staat op disk, dus schaalbaar via env
worker_class = "uvicorn.workers.UvicornWorker"
preload_app = False
timeout = int(os.getenv("WEB_TIMEOUT", "600"))    # grote uploads/downloads
graceful_timeout = 30
keepalive = 5
max_requests = 1000
max_requests_jitter = 100
accesslog = "-"
errorlog = "-"
loglevel = "info"
