"""twitch-notifier: live-stream discovery and Discord webhook fan-out."""

__version__ = "0.1.0"
