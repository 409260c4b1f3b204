from .cached_videos import CachedVideo
from .packaging_versions import PackagingVersion
from .traffic_data import TrafficData
from .traffic_snapshots import TrafficSnapshot
from .videos import Video

__all__ = [
    "CachedVideo",
    "PackagingVersion",
    "TrafficData",
    "TrafficSnapshot",
    "Video",
]
