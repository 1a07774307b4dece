import os


class Settings:
    PROJECT_NAME: str = "hanziflow"
    DEBUG: bool = os.environ.get("HANZIFLOW_DEBUG", "") == "1"
    LOG_DIR: str = os.environ.get("HANZIFLOW_LOG_DIR", "log")
    LOG_FILE: str = "hanziflow.log"
    LOG_TO_DB: bool = os.environ.get("HANZIFLOW_LOG_TO_DB", "1") == "1"
    DB_DIR: str = os.environ.get("HANZIFLOW_DB_DIR", "db")
    DB_FILE: str = "hanziflow.db"
    VOCAB_DIR: str = os.environ.get("HANZIFLOW_VOCAB_DIR", "vocabulary")
    QUIZ_SIZE: int = 10
    MIN_QUIZ_ITEMS: int = 4
    LIGHTNING_SECONDS: int = 90
    LIGHTNING_REPEAT: int = 3
    MODE_COOLDOWN_SECONDS: float = 2.0
    SESSION_COOKIE_NAME: str = "study_session_id"
    SESSION_TIMEOUT_MINUTES: int = 120
    ROOT_PATH: str = os.environ.get("ROOT_PATH", "")


settings = Settings()
