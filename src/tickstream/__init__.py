"""
tickstream: per-connection multiplexed event streams over HTTP.

Each client connection gets a Session of independently paced emitters that
share one output sink; the session is torn down atomically on disconnect.
"""

__version__ = "0.1.0"
