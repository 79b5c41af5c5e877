"""
ClipNest Network Package.

Local socket messaging between ClipNest processes: length-prefixed framing,
single-instance hand-off and the request server.
"""

from network.channel import (
    ACCEPTED_REPLY,
    PROBE_FRAME,
    REJECTED_REPLY,
    encode_frame,
    read_bytes,
    read_message,
    write_message,
)
from network.gate import (
    GateState,
    InstanceGate,
    clipboard_server_name,
    monitor_server_name,
    server_name,
)
from network.server import ServerLoop
from network.client import send_message, send_message_sync

__all__ = [
    'ACCEPTED_REPLY',
    'REJECTED_REPLY',
    'PROBE_FRAME',
    'encode_frame',
    'read_bytes',
    'read_message',
    'write_message',
    'GateState',
    'InstanceGate',
    'clipboard_server_name',
    'monitor_server_name',
    'server_name',
    'ServerLoop',
    'send_message',
    'send_message_sync',
]
