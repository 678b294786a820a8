"""SocialNet backend: social graph, recommendations and runtime configuration."""

__version__ = "1.0.0"
