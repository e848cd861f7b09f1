"""
Socket.IO events.
"""
