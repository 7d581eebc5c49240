"""Allow running as ``python -m webchat_driver``."""

from webchat_driver.cli import app

if __name__ == "__main__":
    app()
