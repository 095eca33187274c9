"""
Streaming runtime: frame encoding, producers, scheduled emitters, sessions.
"""
