import os
import sqlite3
import sys

import redis
import requests
from fastapi import __version__ as fastapi_version


def get_runtime_info():
    return {
        "app_version": os.environ.get("TUNECANON_VERSION", "0.1.0"),
        "python_version": sys.version.split()[0],
        "fastapi_version": fastapi_version,
        "requests_version": requests.__version__,
        "redis_client_version": redis.__version__,
        "sqlite_version": sqlite3.sqlite_version,
    }
