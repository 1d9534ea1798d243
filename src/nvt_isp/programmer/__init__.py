"""The ISP programmer: connect handshake, flash transfer and session orchestration."""

from .channel import CommandChannel
from .handshake import ConnectHandshake, HandshakeState
from .retry import COMMAND_POLICY, CONNECT_POLICY, ReplyPolicy
from .session import DeviceSession
from .transfer import FlashBlockTransfer, load_image, plan_blocks
