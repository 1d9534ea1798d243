"""Protocol layer: packet framing, command builders, ack parsing and sequencing."""

from .framing import PACKET_SIZE, PAYLOAD_SIZE, build_frame, parse_ack_header
from .commands import Command, build_command
from .parser import AckFrame, decode_ack, reply_type_for
from .sequence import SequenceTracker
