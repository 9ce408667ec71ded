"""SessionBridge - completion notifications and remote commands for OpenCode sessions."""

__version__ = "0.1.0"
