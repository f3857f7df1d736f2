"""
Gunicorn configuration for GrowthKit.

    gunicorn -c gunicorn.conf.py run:app
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Sync workers: each request owns one DB transaction
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
# Hard kill well after REQUEST_TIMEOUT_SECONDS has rolled a request back
timeout = int(os.getenv('GUNICORN_TIMEOUT', '30'))
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'growthkit'

# Preload app so the scheduler starts once in the master
preload_app = True

graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting GrowthKit server...")


def on_exit(server):
    print("[Gunicorn] GrowthKit server shutting down...")
