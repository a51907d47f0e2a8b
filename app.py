"""
WSGI entrypoint: gunicorn app:app
"""
import os

from solvem8 import create_app

app = create_app(os.getenv("FLASK_ENV", "production"))


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=app.config.get("DEBUG", False))
