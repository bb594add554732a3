import os

# Must be set before barpanel.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_barpanel.db")
os.environ["USE_FIREBASE"] = "false"
os.environ.pop("WEBHOOK_SECRET", None)
