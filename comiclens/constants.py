class TTL:
    CACHE_MS = 30 * 24 * 60 * 60 * 1000  # 30일 (밀리초)


class CacheSchema:
    # 어노테이션 형식이 바뀌면 올린다 (기존 캐시 전부 무효화)
    VERSION = "1.1"


class StorageKey:
    CACHE_PREFIX = "cache:"
    SESSION_HASH_PREFIX = "img-hash:"
    PREFERENCES = "settings"
    USAGE_STATS = "apiStats"


class Retry:
    MAX_ATTEMPTS = 3
    RATE_LIMIT_BACKOFF = 10.0  # 429: 길게 대기
    OVERLOAD_BACKOFF = 3.0  # 503: 짧게 대기
    MAX_RETRY_AFTER = 60.0


class ErrorMessage:
    MAX_LENGTH = 200
    MAX_BODY_LENGTH = 150


class ImageDefaults:
    # 픽셀 bbox 변환에 쓰는 기본 이미지 크기 (크기를 모를 때)
    WIDTH = 1000
    HEIGHT = 1500
    MAX_FETCH_BYTES = 20 * 1024 * 1024


class PrefetchDefaults:
    FORWARD_PAGES = 5
    BACKWARD_PAGES = 2
