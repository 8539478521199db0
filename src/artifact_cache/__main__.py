"""Allow ``python -m artifact_cache``."""

from .cli import app

if __name__ == "__main__":
    app()
