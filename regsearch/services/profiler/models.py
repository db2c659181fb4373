import os
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Optional

if sys.platform != "win32":
    import resource

PROCESS_START = time.monotonic()


# -------------------------------------------------------------- #
# Profile Sections
# -------------------------------------------------------------- #


@dataclass
class RequestTiming:
    start_time: float
    end_time: float = 0.0
    total_time: float = 0.0
    content_length: int = 0


@dataclass
class AIMetrics:
    embedding_time: float = 0.0
    chat_completion_time: float = 0.0
    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class SearchProfile:
    vector_search_time: float = 0.0
    post_processing_time: float = 0.0
    result_count: int = 0
    cache_hit: bool = False
    similarities: list[float] = field(default_factory=list)


@dataclass
class DatabaseQueryRecord:
    query_type: str
    duration: float
    cached: bool


@dataclass
class DatabaseProfile:
    queries: list[DatabaseQueryRecord] = field(default_factory=list)
    total_time: float = 0.0


@dataclass
class CacheOperation:
    kind: str  # hit | miss | set
    key: str
    duration: float


@dataclass
class CacheProfile:
    hits: int = 0
    misses: int = 0
    operations: list[CacheOperation] = field(default_factory=list)


@dataclass
class ErrorRecord:
    type: str
    message: str
    timestamp: float


@dataclass
class ResourceSnapshot:
    """Process resource usage at a point in time."""

    max_rss_mb: Optional[float]
    cpu_time_s: float
    load_average: Optional[tuple[float, float, float]]
    uptime_s: float

    @classmethod
    def capture(cls) -> "ResourceSnapshot":
        max_rss_mb = None
        if sys.platform != "win32":
            # ru_maxrss is KiB on Linux, bytes on macOS
            divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
            max_rss_mb = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss / divisor

        load_average = os.getloadavg() if hasattr(os, "getloadavg") else None

        return cls(
            max_rss_mb=max_rss_mb,
            cpu_time_s=time.process_time(),
            load_average=load_average,
            uptime_s=time.monotonic() - PROCESS_START,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_rss_mb": round(self.max_rss_mb, 1) if self.max_rss_mb is not None else None,
            "cpu_time_s": round(self.cpu_time_s, 3),
            "load_average": list(self.load_average) if self.load_average else None,
            "uptime_minutes": round(self.uptime_s / 60),
        }


# -------------------------------------------------------------- #
# Request Profile
# -------------------------------------------------------------- #


@dataclass
class RequestProfile:
    """Everything recorded for one request between start and end of profiling."""

    request_id: str
    route: str
    method: str
    timestamp: float
    request: RequestTiming
    ai: AIMetrics = field(default_factory=AIMetrics)
    search: SearchProfile = field(default_factory=SearchProfile)
    database: DatabaseProfile = field(default_factory=DatabaseProfile)
    cache: CacheProfile = field(default_factory=CacheProfile)
    errors: list[ErrorRecord] = field(default_factory=list)
    system: Optional[ResourceSnapshot] = None


@dataclass
class ProfileFilter:
    route: Optional[str] = None
    method: Optional[str] = None
    min_duration: Optional[float] = None
    max_duration: Optional[float] = None
    has_errors: Optional[bool] = None
    time_from: Optional[float] = None
    time_to: Optional[float] = None

    def matches(self, profile: RequestProfile) -> bool:
        total_time = profile.request.total_time
        if self.route is not None and profile.route != self.route:
            return False
        if self.method is not None and profile.method != self.method:
            return False
        if self.min_duration is not None and total_time < self.min_duration:
            return False
        if self.max_duration is not None and total_time > self.max_duration:
            return False
        if self.has_errors is not None and bool(profile.errors) != self.has_errors:
            return False
        if self.time_from is not None and profile.timestamp < self.time_from:
            return False
        if self.time_to is not None and profile.timestamp > self.time_to:
            return False
        return True
