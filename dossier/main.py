"""
Dossier Compliance - FastAPI Application

Serves the dossier check, the missing-items generator, document links and
tasks. Run with:

    uvicorn dossier.main:app

or directly with python -m dossier.main.
"""

import logging

from fastapi import FastAPI

from . import __version__
from .api import router as dossier_router
from .config import DossierSettings

# -----------------------------------------------------------------------------
# Logging Configuration
# -----------------------------------------------------------------------------
_settings = DossierSettings.from_env()

logging.basicConfig(
    level=getattr(logging, _settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("dossier")

# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------
app = FastAPI(
    title="Dossier Compliance",
    description="Requirement status resolution and missing-items task reconciliation",
    version=__version__,
)
app.include_router(dossier_router)


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


logger.info(f"Dossier Compliance {__version__} loaded (data_dir={_settings.data_dir})")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
