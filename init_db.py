"""
Initialize database tables.
Run this on first deploy instead of flask db upgrade.

Set RESET_DB=1 environment variable to drop and recreate all tables.
"""
import os

from solvem8 import create_app, db


def init_db():
    """Create the users, assignments and payments tables."""
    app = create_app(os.getenv('FLASK_ENV', 'production'))
    if app.config.get('STORAGE_BACKEND') != 'sql':
        print("STORAGE_BACKEND is not 'sql'; nothing to create.")
        return

    with app.app_context():
        import solvem8.models  # noqa: F401

        if os.getenv('RESET_DB', '').strip() in ('1', 'true', 'yes'):
            print("⚠️  RESET_DB is set - dropping all tables...")
            db.drop_all()
            print("Tables dropped.")

        print("Creating database tables...")
        db.create_all()
        print("✅ Database tables created successfully!")


if __name__ == '__main__':
    init_db()
