"""
Gunicorn configuration for the propmatch API.

    gunicorn -c deploy/gunicorn.conf.py
"""

wsgi_app = "propmatch.api.wsgi:app"
bind = "127.0.0.1:5000"

# Each request opens its own Airtable session, so workers share nothing
workers = 2
worker_class = "sync"
timeout = 120  # cache sync pages through every source table
preload_app = False

# Reverse proxy runs on the same host
forwarded_allow_ips = "127.0.0.1"

accesslog = "-"
errorlog = "-"
loglevel = "info"
