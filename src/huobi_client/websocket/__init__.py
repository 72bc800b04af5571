"""Push channel client."""

from .socket_client import ChannelSubscription, HuobiSocketClient

__all__ = ['ChannelSubscription', 'HuobiSocketClient']
