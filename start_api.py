#!/usr/bin/env python3
"""
Run migrations (same process, same DATABASE_URL), then seed, then uvicorn.
Ensures tables exist before seed and app start.
"""
import os
import sys

# 1) Wait for DB
from wait_for_db import wait_for_db
wait_for_db()

# 2) Run migrations using the same settings as the app
from tripbook.core.config import settings
from alembic.config import Config
from alembic import command

alembic_cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# 3) Seed demo data (users, a plan, departures) when SEED_DEMO=true
if os.getenv("SEED_DEMO", "").lower() in ("1", "true", "yes"):
    from tripbook.seed import run as run_seed
    run_seed()

# 4) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "tripbook.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
