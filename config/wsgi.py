"""
WSGI config for the Flango café project.

The café session state (current customer, cart, snapshot memo) lives in
process memory, so run a single worker process per café.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_wsgi_application()
