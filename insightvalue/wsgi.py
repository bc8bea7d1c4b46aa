"""WSGI entrypoint: ``gunicorn insightvalue.wsgi:app``.

``APP_ENV`` picks the config class; it defaults to development.
"""

from __future__ import annotations

import os

from insightvalue import create_app

app = create_app(os.environ.get("APP_ENV"))

if __name__ == "__main__":
    app.run(
        host=os.environ.get("INSIGHTVALUE_HOST", "127.0.0.1"),
        port=int(os.environ.get("INSIGHTVALUE_PORT", "5001")),
    )
