"""
Canvas Backend - HTTP/WebSocket front door for the element store.

Exposes the canvas core over a FastAPI app and a small command line tool.
"""
