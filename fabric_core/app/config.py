import os


def get_cors_origins():
    """Get CORS origins from environment or use defaults for development"""
    origins_env = os.getenv("CORS_ORIGINS", "")
    if origins_env:
        return [o.strip() for o in origins_env.split(",") if o.strip()]
    return [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
        "http://127.0.0.1:3001",
        "http://localhost:3001",
    ]


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")

# Location reported for cuts that were never moved
DEFAULT_LOCATION = os.getenv("FABRIC_DEFAULT_LOCATION", "Veerapandi")

# Identifiers handed out on receipt from a processing center: WR-<order part>-NN
RECEIPT_NUMBER_PREFIX = os.getenv("RECEIPT_NUMBER_PREFIX", "WR")

MOVEMENT_NUMBER_PREFIX = os.getenv("MOVEMENT_NUMBER_PREFIX", "MV")
MOVEMENT_NUMBER_PADDING = int(os.getenv("MOVEMENT_NUMBER_PADDING", "4"))
