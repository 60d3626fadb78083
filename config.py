# config.py
# Runtime settings, read from the environment (or a .env file).
# Snowflake credentials are read by database.SnowflakeAdapter itself.
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

QUERY_TIMEOUT = float(os.getenv("QUERY_TIMEOUT", "120"))   # seconds

# JSON catalog of query templates
QUERY_CATALOG_PATH = os.getenv(
    "QUERY_CATALOG_PATH",
    str(Path(__file__).resolve().parent / "catalog" / "yelp_queries.json"),
)

LOG_DIR = os.getenv("LOG_DIR", "logs")
CATALOG_REPORT_PATH = os.getenv("CATALOG_REPORT_PATH", "catalog_check.json")
