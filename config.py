"""
Runtime configuration for the Auction Lab front end.

Every value comes from the environment and is optional. The analytics,
feature-flag and payment keys are inert: no integration reads them, and the
/test status report only says whether each one is set.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    api_url: str = Field("http://localhost:3001/api", description="Remote REST base URL")
    ws_url: str = Field("", description="Remote WebSocket URL, empty disables live bids")
    # reported by /test only
    analytics_key: Optional[str] = None
    feature_flag_key: Optional[str] = None
    stripe_publishable_key: Optional[str] = None
    reconnect_delay: float = Field(3.0, ge=0, description="Seconds between WebSocket reconnects")
    auto_complete_days: int = Field(30, description="Advisory auto-complete window after shipping")
    log_level: str = "INFO"
    port: int = 8000


def load_settings() -> Settings:
    """Build settings from the process environment"""
    return Settings(
        api_url=os.getenv("API_URL", "http://localhost:3001/api"),
        ws_url=os.getenv("WS_URL", ""),
        analytics_key=os.getenv("ANALYTICS_KEY") or None,
        feature_flag_key=os.getenv("FEATURE_FLAG_KEY") or None,
        stripe_publishable_key=os.getenv("STRIPE_PUBLISHABLE_KEY") or None,
        reconnect_delay=float(os.getenv("RECONNECT_DELAY", 3)),
        auto_complete_days=int(os.getenv("AUTO_COMPLETE_DAYS", 30)),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        port=int(os.getenv("PORT", 8000)),
    )
