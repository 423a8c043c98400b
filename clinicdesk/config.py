# clinicdesk configuration
# loads env vars for the remote clinic api, polling and display

import os
from pathlib import Path
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# load .env from project root
load_dotenv(Path(__file__).parent.parent / ".env")


class Settings(BaseSettings):
    # remote clinic api
    CLINIC_API_BASE_URL: str = os.getenv("CLINIC_API_BASE_URL", "https://prospine.in/admin/mobile/api")
    CLINIC_API_TIMEOUT_SECONDS: float = 15.0

    # attendance screen
    ATTENDANCE_POLL_SECONDS: float = 20.0
    ATTENDANCE_LIST_LIMIT: int = 100

    # display
    CURRENCY_SYMBOL: str = "₹"

    # cors
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
