import os, time

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError

from tripbook.core.config import settings


def wait_for_db(url: str | None = None, timeout_s: int | None = None) -> None:
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        return
    if timeout_s is None:
        timeout_s = int(os.getenv("DB_WAIT_TIMEOUT", "60"))
    engine = create_engine(url, pool_pre_ping=True)
    start = time.time()
    print(f"[wait_for_db] Waiting for {engine.url.render_as_string(hide_password=True)} (timeout={timeout_s}s)")
    try:
        while True:
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                print("[wait_for_db] Database is ready.")
                return
            except OperationalError as e:
                if time.time() - start > timeout_s:
                    print(f"[wait_for_db] Timed out waiting for DB. Last error: {e}")
                    raise
                time.sleep(1)
    finally:
        engine.dispose()


if __name__ == "__main__":
    wait_for_db()
