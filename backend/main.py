"""
Ruta Segura Backend — FastAPI
Modular entry point. All logic is split across:
  config.py, models.py, risk_store.py, name_normalizer.py, nearby.py,
  scoring.py, data_fetchers.py, cache.py, routes.py
"""

import logging

logging.basicConfig(level=logging.INFO)

# Import the FastAPI app from routes
from routes import app  # noqa: F401, E402


def run():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
