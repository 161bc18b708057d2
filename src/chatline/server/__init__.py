from chatline.server.broadcaster import Broadcaster
from chatline.server.client import Client
from chatline.server.server import ChatServer

__all__ = ["Broadcaster", "ChatServer", "Client"]
