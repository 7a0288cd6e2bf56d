from os import getenv

class Settings:
    PORT = int(getenv("PORT", "5000"))
    HOST = getenv("HOST", "0.0.0.0")
    DATABASE_URL = getenv("DATABASE_URL", "sqlite:///./tasks.db")
    ATTACHMENT_STORAGE = getenv("ATTACHMENT_STORAGE", "disk")  # none | disk | blob
    UPLOAD_DIR = getenv("UPLOAD_DIR", "uploads")
    LOG_LEVEL = getenv("LOG_LEVEL", "INFO")

    def __init__(self, **overrides):
        # surcharge ponctuelle (tests)
        for key, value in overrides.items():
            if not hasattr(Settings, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

settings = Settings()
