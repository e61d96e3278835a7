"""Workspaces, users, sessions, pending Discord signups, audit events

Revision ID: 20261019_1000
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op

revision = "20261019_1000"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.execute(
        """
CREATE TABLE IF NOT EXISTS workspaces (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  name text NOT NULL,
  default_locale varchar(16),

  discord_enabled boolean NOT NULL DEFAULT false,
  discord_client_id text,
  discord_client_secret_encrypted bytea,
  discord_guild_id text,
  discord_jit_enabled boolean NOT NULL DEFAULT false,

  created_at timestamptz NOT NULL DEFAULT now()
);
"""
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS users (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  email varchar(320) NOT NULL,
  name text,
  password_hash text,
  avatar_url text,
  discord_id varchar(32),
  locale varchar(16),
  email_verified_at timestamptz,
  last_login_at timestamptz,
  is_disabled boolean NOT NULL DEFAULT false,
  created_at timestamptz NOT NULL DEFAULT now(),

  CONSTRAINT users_workspace_email_key UNIQUE (workspace_id, email),
  CONSTRAINT users_workspace_discord_id_key UNIQUE (workspace_id, discord_id)
);
"""
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_users_discord_id ON users (discord_id);")

    op.execute(
        """
CREATE TABLE IF NOT EXISTS memberships (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  user_id uuid NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  role varchar(16) NOT NULL CHECK (role IN ('owner', 'admin', 'member')),
  created_at timestamptz NOT NULL DEFAULT now(),

  CONSTRAINT memberships_workspace_user_key UNIQUE (workspace_id, user_id)
);
"""
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS groups (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  name text NOT NULL,
  is_default boolean NOT NULL DEFAULT false,
  created_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS groups_one_default_per_workspace ON groups (workspace_id) WHERE is_default;"
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS group_users (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  group_id uuid NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
  user_id uuid NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  created_at timestamptz NOT NULL DEFAULT now(),

  CONSTRAINT group_users_group_user_key UNIQUE (group_id, user_id)
);
"""
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS auth_sessions (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id uuid NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  token_hash bytea NOT NULL,

  created_at timestamptz NOT NULL DEFAULT now(),
  expires_at timestamptz NOT NULL,

  revoked_at timestamptz,
  revoked_reason text,

  UNIQUE (token_hash)
);
"""
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS auth_sessions_user_idx ON auth_sessions (user_id, revoked_at, expires_at);"
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS pending_signups (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  token_hash bytea NOT NULL,
  kind varchar(32) NOT NULL CHECK (kind IN ('discord_pending_login')),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,

  discord_id varchar(32) NOT NULL,
  email varchar(320) NOT NULL,
  name text,
  avatar_url text,
  locale varchar(16),

  created_at timestamptz NOT NULL,
  expires_at timestamptz NOT NULL,

  UNIQUE (token_hash)
);
"""
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS pending_signups_expires_idx ON pending_signups (expires_at);"
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS audit_events (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  actor_user_id uuid REFERENCES users(id) ON DELETE SET NULL,
  event_type text NOT NULL,
  event_data jsonb NOT NULL DEFAULT '{}'::jsonb,
  created_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS audit_events_workspace_created_idx ON audit_events (workspace_id, created_at DESC);"
    )


def downgrade() -> None:
    # No downgrade support (early-stage schema; breaking changes allowed).
    pass
