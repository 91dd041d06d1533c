import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

_REQUIRED = ("SN_INSTANCE", "SN_USERNAME", "SN_PASSWORD")


@dataclass
class AppConfig:
    # Flask
    LOG_LEVEL: str = "INFO"

    # ServiceNow
    SN_INSTANCE: str = ""
    SN_USERNAME: str = ""
    SN_PASSWORD: str = ""
    PAGE_SIZE: int = 1000
    VALIDATE_COUNT: bool = False

    # HTTP
    HTTP_TIMEOUT: float = 120.0
    HTTP_RETRIES: int = 3

    # Attachments
    DOWNLOAD_DIR: str = "downloads"

    @classmethod
    def from_env(cls) -> "AppConfig":
        missing = [k for k in _REQUIRED if not os.getenv(k)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")
        return cls(
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            SN_INSTANCE=os.environ["SN_INSTANCE"],
            SN_USERNAME=os.environ["SN_USERNAME"],
            SN_PASSWORD=os.environ["SN_PASSWORD"],
            PAGE_SIZE=int(os.getenv("PAGE_SIZE", "1000")),
            VALIDATE_COUNT=os.getenv("VALIDATE_COUNT", "false").lower() == "true",
            HTTP_TIMEOUT=float(os.getenv("HTTP_TIMEOUT", "120")),
            HTTP_RETRIES=int(os.getenv("HTTP_RETRIES", "3")),
            DOWNLOAD_DIR=os.getenv("DOWNLOAD_DIR", "downloads"),
        )
