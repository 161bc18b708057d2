"""Line-oriented multi-client chat server built on asyncio."""

__version__ = "0.1.0"
