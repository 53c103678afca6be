import os

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv(usecwd=True))


config = {
    "server": {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "5000")),
        "debug": os.getenv("DEBUG", "false").lower() == "true",
    },
    "cors": {
        # "*" or a comma separated list of origins
        "origins": os.getenv("CORS_ORIGINS", "*"),
    },
    "download": {
        "filename_prefix": os.getenv("DOWNLOAD_PREFIX", "tiktok"),
        "chunk_size": 8192,
        "default_provider": os.getenv("DEFAULT_PROVIDER", "tikwm"),
    },
    # Seconds per outbound call
    "timeouts": {
        "short_link": 10,
        "page": 15,
        "mirror": 12,
        "form": 8,
        "submit": 12,
        "api": 15,
        "stream": 20,
        "api_stream": 25,
        "image": 30,
    },
    "logs": {
        "level": os.getenv("LOG_LEVEL", "INFO").upper(),
    },
}

timeouts = config["timeouts"]
