import os
import tempfile

# must run before advisory.db is imported: the engine is built from the environment
_DB_DIR = tempfile.mkdtemp(prefix="advisory-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'api.db')}"
os.environ["CREATE_TABLES"] = "true"
os.environ.pop("IMPORT_API_KEY", None)
