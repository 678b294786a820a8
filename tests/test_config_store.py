"""
Tests for the dynamic configuration store.

Covers reads with environment fallback, the LRU/TTL cache and its
invalidation, audited writes with secret redaction, atomic bulk updates,
.env import/export and default seeding.
"""

import pytest
from unittest.mock import Mock, patch
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from socialnet import config_store
from socialnet.config_store import AuditContext, ConfigCache, EnvUpdate, EnvVariable
from socialnet.db_models import DBConfigAuditLog, DBEnvironmentVariable
from socialnet.exceptions import ConfigStoreError


def _audit_rows(db_session):
    return db_session.query(DBConfigAuditLog).order_by(DBConfigAuditLog.id).all()


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


# =============================================================================
# ConfigCache
# =============================================================================

class TestConfigCache:
    """LRU eviction and sliding expiry."""

    def test_get_missing_returns_default(self):
        cache = ConfigCache(maxsize=2, ttl=10)
        assert cache.get("nope", "fallback") == "fallback"

    def test_caches_none_values(self):
        cache = ConfigCache(maxsize=2, ttl=10)
        cache.set("absent", None)
        assert "absent" in cache
        assert cache.get("absent", "fallback") is None

    def test_least_recently_used_entry_is_evicted(self):
        cache = ConfigCache(maxsize=2, ttl=60)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert len(cache) == 2

    def test_expiry_restarts_on_read(self):
        timer = FakeTimer()
        cache = ConfigCache(maxsize=10, ttl=10, timer=timer)
        cache.set("key", "value")

        timer.now = 8
        assert cache.get("key") == "value"

        # 15s after the write but only 7s after the last read
        timer.now = 15
        assert cache.get("key") == "value"

        timer.now = 30
        assert cache.get("key", None) is None

    def test_unread_entry_expires(self):
        timer = FakeTimer()
        cache = ConfigCache(maxsize=10, ttl=10, timer=timer)
        cache.set("key", "value")

        timer.now = 11
        assert "key" not in cache

    def test_delete_and_clear(self):
        cache = ConfigCache(maxsize=10, ttl=10)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        cache.delete("a", "missing")
        assert "a" not in cache
        assert len(cache) == 2

        cache.clear()
        assert len(cache) == 0

    def test_fill_succeeds_when_nothing_changed(self):
        cache = ConfigCache(maxsize=10, ttl=10)
        generation = cache.generation("key")

        assert cache.set_if_current("key", "value", generation) is True
        assert cache.get("key") == "value"

    def test_fill_is_skipped_after_invalidation(self):
        cache = ConfigCache(maxsize=10, ttl=10)
        generation = cache.generation("key")
        cache.delete("key")

        assert cache.set_if_current("key", "stale", generation) is False
        assert "key" not in cache

    def test_fill_is_skipped_after_clear(self):
        cache = ConfigCache(maxsize=10, ttl=10)
        generation = cache.generation("key")
        cache.clear()

        assert cache.set_if_current("key", "stale", generation) is False
        assert "key" not in cache

    def test_invalidating_other_keys_does_not_block_fill(self):
        cache = ConfigCache(maxsize=10, ttl=10)
        generation = cache.generation("key")
        cache.delete("other")

        assert cache.set_if_current("key", "value", generation) is True


# =============================================================================
# Reads
# =============================================================================

class TestReads:

    def test_get_env_variable_reads_database(self, db_session):
        config_store.set_env_variable(db_session, "SITE_NAME", "Friendly")
        assert config_store.get_env_variable(db_session, "SITE_NAME") == "Friendly"

    def test_falls_back_to_process_environment(self, db_session, monkeypatch):
        monkeypatch.setenv("SOME_PROVIDER_TOKEN", "from-env")
        assert config_store.get_env_variable(db_session, "SOME_PROVIDER_TOKEN") == "from-env"

    def test_database_value_wins_over_environment(self, db_session, monkeypatch):
        monkeypatch.setenv("SITE_NAME", "from-env")
        config_store.set_env_variable(db_session, "SITE_NAME", "from-db")
        assert config_store.get_env_variable(db_session, "SITE_NAME") == "from-db"

    def test_missing_key_returns_none(self, db_session, monkeypatch):
        monkeypatch.delenv("DOES_NOT_EXIST_ANYWHERE", raising=False)
        assert config_store.get_env_variable(db_session, "DOES_NOT_EXIST_ANYWHERE") is None
        assert config_store.env(db_session, "DOES_NOT_EXIST_ANYWHERE", "default") == "default"

    def test_reads_are_served_from_cache(self, db_session):
        config_store.set_env_variable(db_session, "SITE_NAME", "Cached")
        assert config_store.get_env_variable(db_session, "SITE_NAME") == "Cached"

        # change behind the store's back; the cached value is still served
        row = db_session.query(DBEnvironmentVariable).filter_by(key="SITE_NAME").first()
        row.value = "Changed"
        db_session.commit()
        assert config_store.get_env_variable(db_session, "SITE_NAME") == "Cached"

        config_store.clear_config_cache()
        assert config_store.get_env_variable(db_session, "SITE_NAME") == "Changed"

    def test_write_invalidates_cached_absent_key(self, db_session, monkeypatch):
        monkeypatch.delenv("NEW_SETTING", raising=False)
        assert config_store.get_env_variable(db_session, "NEW_SETTING") is None

        config_store.set_env_variable(db_session, "NEW_SETTING", "now-set")
        assert config_store.get_env_variable(db_session, "NEW_SETTING") == "now-set"

    def test_list_is_ordered_by_key_and_filtered_by_category(self, db_session):
        config_store.set_env_variable(db_session, "ZETA", "1", category="general")
        config_store.set_env_variable(db_session, "ALPHA", "2", category="general")
        config_store.set_env_variable(db_session, "FEATURE_X", "true", category="features")

        keys = [v.key for v in config_store.get_env_variables(db_session)]
        assert keys == ["ALPHA", "FEATURE_X", "ZETA"]

        general = config_store.get_env_variables(db_session, "general")
        assert [v.key for v in general] == ["ALPHA", "ZETA"]

    def test_category_change_invalidates_both_category_lists(self, db_session):
        config_store.set_env_variable(db_session, "MOVABLE", "1", category="media")
        assert [v.key for v in config_store.get_env_variables(db_session, "media")] == ["MOVABLE"]
        assert config_store.get_env_variables(db_session, "storage") == []

        config_store.set_env_variable(db_session, "MOVABLE", "1", category="storage")

        assert config_store.get_env_variables(db_session, "media") == []
        assert [v.key for v in config_store.get_env_variables(db_session, "storage")] == ["MOVABLE"]

    def test_list_returns_empty_on_database_error(self):
        db = Mock(spec=Session)
        db.query.side_effect = SQLAlchemyError("connection lost")

        assert config_store.get_env_variables(db) == []

    def test_get_env_variable_falls_back_on_database_error(self, monkeypatch):
        monkeypatch.setenv("FALLBACK_ONLY", "env-value")
        db = Mock(spec=Session)
        db.query.side_effect = SQLAlchemyError("connection lost")

        assert config_store.get_env_variable(db, "FALLBACK_ONLY") == "env-value"

    @pytest.mark.parametrize("value,expected", [
        ("true", True),
        ("TRUE", True),
        ("1", True),
        ("false", False),
        ("0", False),
        ("yes", False),
    ])
    def test_get_bool(self, db_session, value, expected):
        config_store.set_env_variable(db_session, "TOGGLE", value)
        assert config_store.get_bool(db_session, "TOGGLE") is expected

    def test_get_bool_default_when_unset(self, db_session, monkeypatch):
        monkeypatch.delenv("UNSET_TOGGLE", raising=False)
        assert config_store.get_bool(db_session, "UNSET_TOGGLE", default=True) is True


# =============================================================================
# Reads Racing Writes
# =============================================================================

class TestReadRacingWrite:
    """A write commits while a reader sits between its query and its cache fill."""

    @pytest.fixture
    def write_before_fill(self, db_session, monkeypatch):
        def arrange(key, value, **fields):
            real_fill = config_store.config_cache.set_if_current
            pending = [True]

            def fill_after_write(cache_key, cached_value, generation):
                if pending:
                    pending.clear()
                    config_store.set_env_variable(db_session, key, value, **fields)
                return real_fill(cache_key, cached_value, generation)

            monkeypatch.setattr(config_store.config_cache, "set_if_current", fill_after_write)
        return arrange

    def test_single_value_is_not_cached_stale(self, db_session, write_before_fill):
        config_store.set_env_variable(db_session, "SITE_NAME", "old")
        write_before_fill("SITE_NAME", "new")

        # the racing reader still answers with what it read
        assert config_store.get_env_variable(db_session, "SITE_NAME") == "old"
        assert config_store.get_env_variable(db_session, "SITE_NAME") == "new"

    def test_category_list_is_not_cached_stale(self, db_session, write_before_fill):
        config_store.set_env_variable(db_session, "SITE_NAME", "old", category="general")
        write_before_fill("SITE_NAME", "new", category="general")

        assert [v.value for v in config_store.get_env_variables(db_session, "general")] == ["old"]
        assert [v.value for v in config_store.get_env_variables(db_session, "general")] == ["new"]


# =============================================================================
# Feature Flags
# =============================================================================

class TestFeatureFlags:

    def test_is_feature_enabled(self, db_session):
        config_store.set_env_variable(db_session, "FEATURE_STORIES", "true", category="features")
        config_store.set_env_variable(db_session, "FEATURE_EVENTS", "false", category="features")

        assert config_store.is_feature_enabled(db_session, "stories") is True
        assert config_store.is_feature_enabled(db_session, "events") is False

    def test_unknown_feature_is_disabled(self, db_session, monkeypatch):
        monkeypatch.delenv("FEATURE_TELEPORT", raising=False)
        assert config_store.is_feature_enabled(db_session, "teleport") is False

    def test_get_feature_flags_strips_prefix(self, db_session):
        config_store.set_env_variable(db_session, "FEATURE_GROUPS", "true", category="features")
        config_store.set_env_variable(db_session, "FEATURE_MARKETPLACE", "false", category="features")
        config_store.set_env_variable(db_session, "SITE_NAME", "x", category="general")

        assert config_store.get_feature_flags(db_session) == {"GROUPS": True, "MARKETPLACE": False}


# =============================================================================
# Writes & Audit
# =============================================================================

class TestWrites:

    def test_create_records_audit_entry(self, db_session):
        context = AuditContext(user_id="7", ip_address="10.0.0.1", user_agent="pytest")
        variable = config_store.set_env_variable(db_session, "SITE_URL", "https://example.com", context=context)

        assert variable == EnvVariable(key="SITE_URL", value="https://example.com", category="general")

        [entry] = _audit_rows(db_session)
        assert entry.action == "CREATE"
        assert entry.entity_type == "ENVIRONMENT_VARIABLE"
        assert entry.previous_value is None
        assert entry.new_value == "https://example.com"
        assert entry.user_id == "7"
        assert entry.ip_address == "10.0.0.1"
        assert entry.user_agent == "pytest"

    def test_writes_without_context_are_attributed_to_system(self, db_session):
        config_store.set_env_variable(db_session, "SITE_NAME", "x")
        assert _audit_rows(db_session)[0].user_id == "system"

    def test_update_keeps_unspecified_attributes(self, db_session):
        config_store.set_env_variable(
            db_session, "STRIPE_KEY", "sk_1", description="Payments", is_secret=True, category="auth"
        )
        updated = config_store.set_env_variable(db_session, "STRIPE_KEY", "sk_2")

        assert updated.value == "sk_2"
        assert updated.description == "Payments"
        assert updated.is_secret is True
        assert updated.category == "auth"

    def test_secret_values_are_redacted_in_audit(self, db_session):
        config_store.set_env_variable(db_session, "API_TOKEN", "first", is_secret=True)
        config_store.set_env_variable(db_session, "API_TOKEN", "second")
        config_store.delete_env_variable(db_session, "API_TOKEN")

        create, update, delete = _audit_rows(db_session)
        assert create.new_value == "[REDACTED]"
        assert (update.action, update.previous_value, update.new_value) == ("UPDATE", "[REDACTED]", "[REDACTED]")
        assert (delete.action, delete.previous_value) == ("DELETE", "[REDACTED]")

    def test_update_audit_shows_previous_value(self, db_session):
        config_store.set_env_variable(db_session, "SITE_NAME", "Old")
        config_store.set_env_variable(db_session, "SITE_NAME", "New")

        update = _audit_rows(db_session)[-1]
        assert update.previous_value == "Old"
        assert update.new_value == "New"

    def test_delete_missing_key_returns_false(self, db_session):
        assert config_store.delete_env_variable(db_session, "NEVER_SET") is False
        assert _audit_rows(db_session) == []

    def test_delete_removes_and_invalidates(self, db_session):
        config_store.set_env_variable(db_session, "TEMP", "1")
        assert config_store.get_env_variable(db_session, "TEMP") == "1"

        assert config_store.delete_env_variable(db_session, "TEMP") is True
        assert db_session.query(DBEnvironmentVariable).filter_by(key="TEMP").first() is None
        assert "TEMP" not in [v.key for v in config_store.get_env_variables(db_session)]

    def test_writes_publish_change_notification(self, db_session):
        with patch("socialnet.config_store.notify_config_changed") as notify:
            config_store.set_env_variable(db_session, "SITE_NAME", "x")
            config_store.delete_env_variable(db_session, "SITE_NAME")

        assert [c.args[0] for c in notify.call_args_list] == ["SITE_NAME", "SITE_NAME"]

    def test_failed_write_rolls_back_and_raises(self):
        db = Mock(spec=Session)
        db.query.side_effect = SQLAlchemyError("disk full")

        with pytest.raises(ConfigStoreError):
            config_store.set_env_variable(db, "SITE_NAME", "x")
        db.rollback.assert_called_once()


class TestBulkUpdate:

    def test_applies_all_updates(self, db_session):
        updates = [EnvUpdate("A_KEY", "1"), EnvUpdate("B_KEY", "2", category="media")]
        results = config_store.bulk_update_env_variables(db_session, updates, AuditContext(user_id="1"))

        assert [v.key for v in results] == ["A_KEY", "B_KEY"]
        assert config_store.get_env_variable(db_session, "B_KEY") == "2"
        assert len(_audit_rows(db_session)) == 2

    def test_is_all_or_nothing(self, db_session):
        config_store.set_env_variable(db_session, "EXISTING", "before")

        # value=None violates NOT NULL on the second update
        updates = [EnvUpdate("EXISTING", "after"), EnvUpdate("NEW_KEY", None)]
        with pytest.raises(ConfigStoreError):
            config_store.bulk_update_env_variables(db_session, updates)

        assert db_session.query(DBEnvironmentVariable).filter_by(key="NEW_KEY").first() is None
        assert db_session.query(DBEnvironmentVariable).filter_by(key="EXISTING").first().value == "before"
        assert len(_audit_rows(db_session)) == 1


# =============================================================================
# Import / Export
# =============================================================================

class TestImportExport:

    def test_parse_skips_comments_and_blank_lines(self):
        updates, errors = config_store.parse_env_content(
            "# comment\n\nSITE_NAME=My Site\nDATABASE_URL=postgres://u:p@h/db?a=b\nnot a pair\n"
        )

        assert [(u.key, u.value) for u in updates] == [
            ("SITE_NAME", "My Site"),
            ("DATABASE_URL", "postgres://u:p@h/db?a=b"),
        ]
        assert errors == ["Invalid format: not a pair"]

    def test_import_writes_variables_and_reports_errors(self, db_session):
        result = config_store.import_env_variables(db_session, "A_ONE=1\nbroken\nB_TWO= 2 \n")

        assert result.success is True
        assert result.imported == 2
        assert result.errors == ["Invalid format: broken"]
        assert config_store.get_env_variable(db_session, "B_TWO") == "2"

    def test_import_failure_reports_database_error(self):
        db = Mock(spec=Session)
        db.query.side_effect = SQLAlchemyError("gone")

        result = config_store.import_env_variables(db, "A_ONE=1\n")

        assert result.success is False
        assert result.imported == 0
        assert result.errors == ["Database error during import"]

    def test_export_hides_secrets_unless_requested(self, db_session):
        config_store.set_env_variable(db_session, "SITE_NAME", "Net")
        config_store.set_env_variable(db_session, "API_SECRET", "hunter2", is_secret=True)

        assert config_store.export_env_variables(db_session) == "SITE_NAME=Net"
        assert config_store.export_env_variables(db_session, include_secrets=True) == "API_SECRET=hunter2\nSITE_NAME=Net"


# =============================================================================
# Defaults, Masking & Search
# =============================================================================

class TestDefaults:

    def test_initialize_creates_missing_defaults_once(self, db_session):
        expected = len(config_store.default_env_variables())

        assert config_store.initialize_default_env_variables(db_session) == expected
        assert config_store.initialize_default_env_variables(db_session) == 0
        assert config_store.get_env_variable(db_session, "SITE_NAME") == "SocialNet"
        assert config_store.is_feature_enabled(db_session, "stories") is True

    def test_initialize_never_overwrites_existing_values(self, db_session):
        config_store.set_env_variable(db_session, "SITE_NAME", "Custom Name")

        config_store.initialize_default_env_variables(db_session)

        assert config_store.get_env_variable(db_session, "SITE_NAME") == "Custom Name"

    def test_environment_secrets_are_imported_as_secret(self, monkeypatch):
        monkeypatch.setenv("GITHUB_CLIENT_SECRET", "gh-secret")
        monkeypatch.setenv("EMAIL_SERVER_HOST", "smtp.example.com")

        defaults = {u.key: u for u in config_store.default_env_variables()}

        assert defaults["GITHUB_CLIENT_SECRET"].is_secret is True
        assert defaults["GITHUB_CLIENT_SECRET"].category == "auth"
        assert defaults["EMAIL_SERVER_HOST"].is_secret is False
        assert defaults["EMAIL_SERVER_HOST"].category == "email"


class TestMaskingAndSearch:

    def test_mask_variable(self):
        secret = EnvVariable(key="API_KEY", value="abc", is_secret=True)
        plain = EnvVariable(key="SITE_NAME", value="Net")

        assert config_store.mask_variable(secret).value == "[REDACTED]"
        assert config_store.mask_variable(plain).value == "Net"

    def test_search_never_matches_secret_values(self):
        variables = [
            EnvVariable(key="API_KEY", value="needle", is_secret=True),
            EnvVariable(key="SITE_NAME", value="needle"),
            EnvVariable(key="OTHER", value="x", description="Has a Needle"),
        ]

        matches = config_store.filter_variables(variables, "NEEDLE")

        assert [v.key for v in matches] == ["SITE_NAME", "OTHER"]

    def test_empty_search_returns_everything(self):
        variables = [EnvVariable(key="A", value="1")]
        assert config_store.filter_variables(variables, None) == variables


# =============================================================================
# Audit Log Listing
# =============================================================================

class TestAuditLog:

    def test_pagination_newest_first(self, db_session):
        for i in range(5):
            config_store.set_env_variable(db_session, f"KEY_{i}", str(i))

        page = config_store.list_audit_logs(db_session, page=1, limit=2)

        assert page["pagination"] == {"total": 5, "page": 1, "limit": 2, "total_pages": 3}
        assert [log.new_value for log in page["audit_logs"]] == ["4", "3"]

        last = config_store.list_audit_logs(db_session, page=3, limit=2)
        assert [log.new_value for log in last["audit_logs"]] == ["0"]

    def test_filter_by_user(self, db_session):
        config_store.set_env_variable(db_session, "A_KEY", "1", context=AuditContext(user_id="1"))
        config_store.set_env_variable(db_session, "B_KEY", "2", context=AuditContext(user_id="2"))

        page = config_store.list_audit_logs(db_session, user_id="2")

        assert page["pagination"]["total"] == 1
        assert page["audit_logs"][0].new_value == "2"
