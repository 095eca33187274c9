"""
Infrastructure layer - logging, settings, and error types.

This layer contains the technical concerns shared by the runtime, the HTTP
transport, and the CLI.
"""
