"""WebSocket 广播"""

from taskweave.web_api.websockets.broadcast_hub import BroadcastHub, ChannelInfo, ConnectionState

__all__ = ["BroadcastHub", "ChannelInfo", "ConnectionState"]
