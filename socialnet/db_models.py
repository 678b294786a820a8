"""
SQLAlchemy database models.

Maps the social graph, posts and the dynamic configuration store to tables.
Separate from Pydantic models (models.py) which handle API validation.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import relationship, declarative_base
from datetime import datetime

Base = declarative_base()


class DBUser(Base):
    """User account table."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True)
    name = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    avatar = Column(String(1024), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="USER", index=True)  # ADMIN, MODERATOR, USER
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    posts = relationship("DBPost", back_populates="author", cascade="all, delete-orphan")
    likes = relationship("DBLike", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<DBUser(id={self.id}, username='{self.username}', role='{self.role}')>"


class DBFriend(Base):
    """
    Directed friendship edge.

    A friendship between A and B is stored as two rows (A->B and B->A) so that
    "friends of" is a single-column lookup in either direction.
    """
    __tablename__ = "friends"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    friend_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    friend = relationship("DBUser", foreign_keys=[friend_id])

    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friend_pair"),
    )

    def __repr__(self):
        return f"<DBFriend(user_id={self.user_id}, friend_id={self.friend_id})>"


class DBPost(Base):
    """User post table."""
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="APPROVED", index=True)  # APPROVED, FLAGGED, REJECTED
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    author = relationship("DBUser", back_populates="posts")
    likes = relationship("DBLike", back_populates="post", cascade="all, delete-orphan")
    comments = relationship("DBComment", back_populates="post", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_post_author_created', 'author_id', 'created_at'),
    )

    def __repr__(self):
        return f"<DBPost(id={self.id}, author_id={self.author_id}, status='{self.status}')>"


class DBLike(Base):
    """A user liking a post."""
    __tablename__ = "likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("DBUser", back_populates="likes")
    post = relationship("DBPost", back_populates="likes")

    __table_args__ = (
        UniqueConstraint("user_id", "post_id", name="uq_like_user_post"),
    )


class DBComment(Base):
    """Comment on a post."""
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    post = relationship("DBPost", back_populates="comments")
    author = relationship("DBUser")


class DBReport(Base):
    """Moderation queue entry, raised by users or by automatic moderation."""
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=True, index=True)
    reporter_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)  # NULL = system
    reason = Column(Text, nullable=False)
    categories = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="PENDING", index=True)  # PENDING, RESOLVED, DISMISSED
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    post = relationship("DBPost")

    def __repr__(self):
        return f"<DBReport(id={self.id}, post_id={self.post_id}, status='{self.status}')>"


# =============================================================================
# Dynamic Configuration
# =============================================================================

class DBEnvironmentVariable(Base):
    """Runtime-editable configuration value (site settings, feature flags, API keys)."""
    __tablename__ = "environment_variables"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(255), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_secret = Column(Boolean, nullable=False, default=False)
    category = Column(String(100), nullable=False, default="general", index=True)
    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<DBEnvironmentVariable(key='{self.key}', category='{self.category}', secret={self.is_secret})>"


class DBConfigAuditLog(Base):
    """Append-only record of configuration changes."""
    __tablename__ = "config_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(20), nullable=False)  # CREATE, UPDATE, DELETE
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(100), nullable=False, index=True)
    previous_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    user_id = Column(String(100), nullable=False, default="system", index=True)
    ip_address = Column(String(100), nullable=True)
    user_agent = Column(String(512), nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<DBConfigAuditLog(action='{self.action}', entity_id='{self.entity_id}', user='{self.user_id}')>"
