"""
API Routers for the SocialNet backend.

Each router handles a specific domain:
- auth: Registration, login, current user
- posts: Posts, feed, likes, comments, reports
- friends: Friendship management
- recommendations: People you may know, posts you may like
- admin_config: Dynamic configuration store (admin)
- admin: Moderation queue and site statistics
- setup: First-run setup
"""

from . import (
    auth,
    posts,
    friends,
    recommendations,
    admin_config,
    admin,
    setup,
)
