"""WSGI entry point for production deployment (e.g. gunicorn wsgi:app)."""
import sys
import os
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from config import load_config
from utils.logger import setup_logging
from models.database import Database
from alerts.factory import build_components
from alerts.scheduler import SweepScheduler
from web.app import create_app

logger = logging.getLogger("petalerts.wsgi")

config = load_config(os.environ.get("PET_ALERTS_CONFIG"))
setup_logging(config["logging"]["level"], config["logging"].get("file"))

db = Database(config["database"]["path"])
db.connect()

components = build_components(config, db)
app = create_app(config, components)

# Optional in-process sweep; normally run via `petalerts schedule`
if os.environ.get("PET_ALERTS_RUN_SWEEP", "").lower() in ("1", "true", "yes"):
    sweeper = SweepScheduler(
        components["batch"], config["alerts"]["sweep_interval_seconds"],
        maintenance=components["maintenance"],
        maintenance_interval=config["alerts"]["maintenance_interval_seconds"],
    )
    sweeper.start(run_immediately=False)
    logger.info("In-process sweep scheduler enabled")
