import os

# Keep the module-level engine off disk while tests import the app.
os.environ.setdefault("MOVEMENTS_DATABASE_URL", "sqlite:///:memory:")
