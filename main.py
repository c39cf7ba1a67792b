"""
Carpool Pricing & Ride Engagement Backend
=========================================
Entry point. Run with: uvicorn main:app --reload
or ``python main.py`` to use HOST / PORT from the environment.
"""

import uvicorn

from carpool.api.app import create_app
from carpool.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=True,
    )
