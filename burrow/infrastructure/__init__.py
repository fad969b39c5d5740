"""
Infrastructure layer: configuration, logging, and the OS and asyncssh
adapters behind the core interfaces.
"""
