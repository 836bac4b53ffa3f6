import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# "memory" or "redis"
ROOM_STORE = os.getenv("ROOM_STORE", "memory")

MIN_ROOM_CAPACITY = int(os.getenv("MIN_ROOM_CAPACITY", 2))
MAX_ROOM_CAPACITY = int(os.getenv("MAX_ROOM_CAPACITY", 10))
DEFAULT_ROOM_CAPACITY = int(os.getenv("DEFAULT_ROOM_CAPACITY", 8))

MAX_NAME_LENGTH = int(os.getenv("MAX_NAME_LENGTH", 64))
MAX_PEER_ID_LENGTH = int(os.getenv("MAX_PEER_ID_LENGTH", 128))
MAX_CHAT_LENGTH = int(os.getenv("MAX_CHAT_LENGTH", 2000))

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
