"""
WSGI entry point.

    gunicorn -c deploy/gunicorn.conf.py propmatch.api.wsgi:app
"""

from propmatch.api.app import create_app
from propmatch.config import Config
from propmatch.utils.logging import configure_from_config

config = Config()
configure_from_config(config)

app = create_app(config)
