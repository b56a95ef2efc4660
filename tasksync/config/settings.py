"""
Application settings and configuration
"""

import os
from pathlib import Path
from dotenv import load_dotenv
from typing import Optional

# Load environment variables from .env file
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings:
    """Application settings loaded from environment variables"""
    
    # Motion
    MOTION_API_KEY: str = os.getenv("MOTION_API_KEY", "")
    MOTION_API_BASE_URL: str = os.getenv("MOTION_API_BASE_URL", "https://api.usemotion.com/v1")
    
    # Application
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE") or None
    TIMEZONE_OFFSET_HOURS: int = int(os.getenv("TIMEZONE_OFFSET_HOURS", "0"))
    
    # Time blocking
    GRID_START_HOUR: int = int(os.getenv("GRID_START_HOUR", "6"))
    GRID_END_HOUR: int = int(os.getenv("GRID_END_HOUR", "18"))
    LIVE_REFRESH_SECONDS: int = int(os.getenv("LIVE_REFRESH_SECONDS", "60"))
    OVERLAP_POLICY: str = os.getenv("OVERLAP_POLICY", "displace").lower()
    
    @classmethod
    def validate(cls) -> bool:
        """Validate that all required settings are present"""
        required = {
            "MOTION_API_KEY": cls.MOTION_API_KEY,
        }
        
        missing = [name for name, value in required.items() if not value]
        
        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}"
            )
        
        if not 0 <= cls.GRID_START_HOUR < cls.GRID_END_HOUR <= 24:
            raise ValueError(
                f"Invalid time grid: {cls.GRID_START_HOUR}:00-{cls.GRID_END_HOUR}:00"
            )
        
        return True


# Global settings instance
settings = Settings()
