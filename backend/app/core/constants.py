"""Application-wide constants for the SkillSwap platform."""

from __future__ import annotations

import os

BRAND_NAME = "SkillSwap"

API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = "Session booking and credit settlement for skill exchanges"
API_VERSION = "1.0.0"
API_V1_PREFIX = "/api/v1"

# Paths excluded from HTTP request metrics
METRICS_PATH = "/metrics"

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
