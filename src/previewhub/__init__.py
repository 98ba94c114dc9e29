"""previewhub - live, shared shell and preview sessions over WebSocket.

A client opens a workspace by id, writes files into it, starts processes,
and every connected viewer of that workspace sees the file changes and the
process output in real time.
"""

__version__ = "0.1.0"
