"""Channel senders.

This module exports the dispatcher and the senders for every supported channel.
"""

from .base import ChannelSender, DeliveryResult
from .dispatcher import ChannelDispatcher
from .sms import SmsSender
from .voice import VoiceCallSender
from .whatsapp import WhatsAppSender

__all__ = [
    "ChannelDispatcher",
    "ChannelSender",
    "DeliveryResult",
    "SmsSender",
    "VoiceCallSender",
    "WhatsAppSender",
]
