"""Realtime messaging core (Socket.IO).

Connection gate, room registry, presence, typing state and the message
dispatcher live here; persistence is reached only through ``gateway``.
"""
