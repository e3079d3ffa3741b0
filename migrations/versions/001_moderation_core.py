# migrations/versions/001_moderation_core.py

"""Moderation & compliance core schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def _restriction_columns():
    return [
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('decision_id', sa.String(), nullable=False),
        sa.Column('reason_code', sa.String(), nullable=False),
        sa.Column('starts_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('lifted_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    # Users mirrored from the identity provider
    op.create_table('auth_users',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('roles', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('account_status', sa.String(), server_default='active', nullable=False),
                    sa.Column('suspended', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('suspension_expires_at', sa.DateTime(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id')
                    )

    # Community content
    op.create_table('community_content',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('content_type', sa.String(), nullable=False),
                    sa.Column('author_id', sa.String(), nullable=False),
                    sa.Column('body', sa.Text(), nullable=True),
                    sa.Column('media_url', sa.String(), nullable=True),
                    sa.Column('visibility', sa.String(), server_default='public', nullable=False),
                    sa.Column('quarantined', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('deleted_at', sa.DateTime(), nullable=True),
                    sa.Column('deleted_by', sa.String(), nullable=True),
                    sa.Column('deletion_reason', sa.String(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_community_content_author_id'), 'community_content', ['author_id'])

    op.create_table('content_geo_blocks',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('content_id', sa.String(), nullable=False),
                    sa.Column('territory_code', sa.String(), nullable=False),
                    sa.Column('reason_code', sa.String(), nullable=False),
                    sa.Column('created_at', sa.DateTime(), nullable=False),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('content_id', 'territory_code', 'reason_code')
                    )
    op.create_index(op.f('ix_content_geo_blocks_content_id'), 'content_geo_blocks', ['content_id'])
    op.create_index(op.f('ix_content_geo_blocks_territory_code'), 'content_geo_blocks', ['territory_code'])

    # Audit ledger (append-only)
    op.create_table('audit_events',
                    sa.Column('seq', sa.BigInteger(), autoincrement=True, nullable=False),
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('event_type', sa.String(), nullable=False),
                    sa.Column('actor_id', sa.String(), nullable=False),
                    sa.Column('actor_type', sa.String(), nullable=False),
                    sa.Column('target_id', sa.String(), nullable=False),
                    sa.Column('target_type', sa.String(), nullable=False),
                    sa.Column('action', sa.String(), nullable=False),
                    sa.Column('metadata', sa.JSON(), nullable=False),
                    sa.Column('timestamp', sa.DateTime(), nullable=False),
                    sa.Column('signature', sa.String(length=64), nullable=False),
                    sa.Column('signing_key_version', sa.String(), nullable=False),
                    sa.Column('pii_tagged', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('retention_until', sa.DateTime(), nullable=False),
                    sa.Column('partition_id', sa.String(), nullable=False),
                    sa.Column('idempotency_key', sa.String(), nullable=True),
                    sa.Column('created_at', sa.DateTime(), nullable=False),
                    sa.PrimaryKeyConstraint('seq'),
                    sa.UniqueConstraint('id'),
                    sa.UniqueConstraint('idempotency_key')
                    )
    op.create_index(op.f('ix_audit_events_event_type'), 'audit_events', ['event_type'])
    op.create_index(op.f('ix_audit_events_timestamp'), 'audit_events', ['timestamp'])
    op.create_index('ix_audit_events_target', 'audit_events', ['target_type', 'target_id', 'timestamp'])
    op.create_index('ix_audit_events_partition_seq', 'audit_events', ['partition_id', 'seq'])

    op.execute(
        "CREATE OR REPLACE FUNCTION audit_events_reject_mutation() RETURNS trigger AS $$ "
        "BEGIN RAISE EXCEPTION 'audit events are immutable' USING ERRCODE = 'P0001'; END; "
        "$$ LANGUAGE plpgsql"
    )
    op.execute(
        "CREATE TRIGGER audit_events_worm BEFORE UPDATE OR DELETE ON audit_events "
        "FOR EACH ROW EXECUTE FUNCTION audit_events_reject_mutation()"
    )
    op.execute(
        "CREATE TRIGGER audit_events_worm_truncate BEFORE TRUNCATE ON audit_events "
        "FOR EACH STATEMENT EXECUTE FUNCTION audit_events_reject_mutation()"
    )

    op.create_table('audit_signing_keys',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('version', sa.String(), nullable=False),
                    sa.Column('key_fingerprint', sa.String(), nullable=False),
                    sa.Column('is_active', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('activated_at', sa.DateTime(), nullable=False),
                    sa.Column('rotated_at', sa.DateTime(), nullable=True),
                    sa.Column('deactivated_at', sa.DateTime(), nullable=True),
                    sa.Column('overlap_window_seconds', sa.Integer(), nullable=False),
                    sa.Column('rotation_reason', sa.String(), nullable=True),
                    sa.Column('rotated_by', sa.String(), nullable=True),
                    sa.Column('created_at', sa.DateTime(), nullable=False),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('version')
                    )
    op.create_index('uq_audit_signing_keys_active', 'audit_signing_keys', ['is_active'],
                    unique=True, postgresql_where=sa.text('is_active'))

    op.create_table('audit_legal_holds',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('target_type', sa.String(), nullable=False),
                    sa.Column('target_id', sa.String(), nullable=False),
                    sa.Column('reason', sa.Text(), nullable=False),
                    sa.Column('legal_basis', sa.String(), nullable=False),
                    sa.Column('court_order_reference', sa.String(), nullable=True),
                    sa.Column('created_by', sa.String(), nullable=False),
                    sa.Column('created_at', sa.DateTime(), nullable=False),
                    sa.Column('review_date', sa.DateTime(), nullable=True),
                    sa.Column('released_at', sa.DateTime(), nullable=True),
                    sa.Column('released_by', sa.String(), nullable=True),
                    sa.Column('release_reason', sa.Text(), nullable=True),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index('ix_audit_legal_holds_target', 'audit_legal_holds', ['target_type', 'target_id'])
    op.create_index('uq_audit_legal_holds_active', 'audit_legal_holds', ['target_type', 'target_id'],
                    unique=True, postgresql_where=sa.text('released_at IS NULL'))

    op.create_table('audit_partitions',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('range_start', sa.DateTime(), nullable=False),
                    sa.Column('range_end', sa.DateTime(), nullable=False),
                    sa.Column('status', sa.String(), server_default='open', nullable=False),
                    sa.Column('sealed_at', sa.DateTime(), nullable=True),
                    sa.Column('expired_at', sa.DateTime(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id')
                    )

    op.create_table('audit_partition_manifests',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('partition_id', sa.String(), nullable=False),
                    sa.Column('record_count', sa.Integer(), nullable=False),
                    sa.Column('checksum', sa.String(length=64), nullable=False),
                    sa.Column('manifest_signature', sa.String(length=64), nullable=False),
                    sa.Column('signing_key_version', sa.String(), nullable=False),
                    sa.Column('sealed_by', sa.String(), nullable=False),
                    sa.Column('sealed_at', sa.DateTime(), nullable=False),
                    sa.Column('verification_status', sa.String(), server_default='verified', nullable=False),
                    sa.Column('last_verified_at', sa.DateTime(), nullable=True),
                    sa.Column('notes', sa.Text(), nullable=True),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('partition_id')
                    )

    # Report intake
    op.create_table('content_reports',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('content_id', sa.String(), nullable=False),
                    sa.Column('content_type', sa.String(), nullable=False),
                    sa.Column('content_locator', sa.String(), nullable=True),
                    sa.Column('content_hash', sa.String(length=64), nullable=False),
                    sa.Column('reporter_id', sa.String(), nullable=False),
                    sa.Column('reporter_contact', sa.String(), nullable=True),
                    sa.Column('trusted_flagger', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('trusted_flagger_id', sa.String(), nullable=True),
                    sa.Column('report_type', sa.String(), nullable=False),
                    sa.Column('jurisdiction', sa.String(), nullable=True),
                    sa.Column('legal_reference', sa.String(), nullable=True),
                    sa.Column('explanation', sa.Text(), nullable=False),
                    sa.Column('good_faith_declaration', sa.Boolean(), nullable=False),
                    sa.Column('evidence_urls', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('status', sa.String(), server_default='pending', nullable=False),
                    sa.Column('priority', sa.Integer(), nullable=False),
                    sa.Column('priority_reason', sa.String(), nullable=True),
                    sa.Column('sla_lane', sa.String(), nullable=False),
                    sa.Column('submitted_at', sa.DateTime(), nullable=False),
                    sa.Column('sla_deadline', sa.DateTime(), nullable=False),
                    sa.Column('content_snapshot_id', sa.String(), nullable=True),
                    sa.Column('duplicate_of_report_id', sa.String(), nullable=True),
                    sa.Column('resolved_at', sa.DateTime(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_content_reports_content_id'), 'content_reports', ['content_id'])
    op.create_index(op.f('ix_content_reports_reporter_id'), 'content_reports', ['reporter_id'])
    op.create_index('ix_content_reports_dedupe', 'content_reports', ['content_hash', 'reporter_id', 'submitted_at'])
    op.create_index('ix_content_reports_open', 'content_reports', ['status', 'sla_deadline'])

    op.create_table('content_snapshots',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('content_id', sa.String(), nullable=False),
                    sa.Column('snapshot_hash', sa.String(length=64), nullable=False),
                    sa.Column('snapshot_data', sa.JSON(), nullable=False),
                    sa.Column('captured_at', sa.DateTime(), nullable=False),
                    sa.Column('captured_by_report_id', sa.String(), nullable=True),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_content_snapshots_content_id'), 'content_snapshots', ['content_id'])
    op.create_index('ix_content_snapshots_hash', 'content_snapshots', ['snapshot_hash', 'captured_at'])

    op.create_table('trusted_flaggers',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('user_id', sa.String(), nullable=False),
                    sa.Column('organization_name', sa.String(), nullable=False),
                    sa.Column('contact_email', sa.String(), nullable=True),
                    sa.Column('specialization', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('status', sa.String(), server_default='active', nullable=False),
                    sa.Column('total_reports', sa.Integer(), server_default='0', nullable=False),
                    sa.Column('upheld_decisions', sa.Integer(), server_default='0', nullable=False),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('user_id')
                    )

    # Claims, decisions, statements of reasons, executions
    op.create_table('moderation_claims',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('report_id', sa.String(), nullable=False),
                    sa.Column('moderator_id', sa.String(), nullable=False),
                    sa.Column('claimed_at', sa.DateTime(), nullable=False),
                    sa.Column('expires_at', sa.DateTime(), nullable=False),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('report_id')
                    )
    op.create_index(op.f('ix_moderation_claims_moderator_id'), 'moderation_claims', ['moderator_id'])

    op.create_table('moderation_decisions',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('report_id', sa.String(), nullable=False),
                    sa.Column('moderator_id', sa.String(), nullable=False),
                    sa.Column('supervisor_id', sa.String(), nullable=True),
                    sa.Column('action', sa.String(), nullable=False),
                    sa.Column('policy_violations', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('reasoning', sa.Text(), nullable=False),
                    sa.Column('evidence', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('content_id', sa.String(), nullable=False),
                    sa.Column('user_id', sa.String(), nullable=True),
                    sa.Column('duration_days', sa.Integer(), nullable=True),
                    sa.Column('territorial_scope', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('statement_of_reasons_id', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), server_default='pending', nullable=False),
                    sa.Column('requires_supervisor_approval', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('approved_at', sa.DateTime(), nullable=True),
                    sa.Column('executed_at', sa.DateTime(), nullable=True),
                    sa.Column('reversed_at', sa.DateTime(), nullable=True),
                    sa.Column('reversal_reason', sa.Text(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_moderation_decisions_report_id'), 'moderation_decisions', ['report_id'])
    op.create_index(op.f('ix_moderation_decisions_moderator_id'), 'moderation_decisions', ['moderator_id'])
    op.create_index(op.f('ix_moderation_decisions_user_id'), 'moderation_decisions', ['user_id'])
    op.create_index('uq_moderation_decisions_live_report', 'moderation_decisions', ['report_id'],
                    unique=True, postgresql_where=sa.text("status <> 'reversed'"))

    op.create_table('statements_of_reasons',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('decision_id', sa.String(), nullable=False),
                    sa.Column('decision_ground', sa.String(), nullable=False),
                    sa.Column('legal_reference', sa.String(), nullable=True),
                    sa.Column('content_type', sa.String(), nullable=False),
                    sa.Column('category', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('facts_and_circumstances', sa.Text(), nullable=False),
                    sa.Column('automated_detection', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('automated_decision', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('territorial_scope', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('redress', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('transparency_db_id', sa.String(), nullable=True),
                    sa.Column('transparency_submitted_at', sa.DateTime(), nullable=True),
                    sa.Column('created_at', sa.DateTime(), nullable=False),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('decision_id')
                    )

    op.create_table('action_executions',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('decision_id', sa.String(), nullable=False),
                    sa.Column('action', sa.String(), nullable=False),
                    sa.Column('content_id', sa.String(), nullable=False),
                    sa.Column('user_id', sa.String(), nullable=True),
                    sa.Column('reason_code', sa.String(), nullable=False),
                    sa.Column('duration_days', sa.Integer(), nullable=True),
                    sa.Column('expires_at', sa.DateTime(), nullable=True),
                    sa.Column('territorial_scope', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('executed_by', sa.String(), nullable=False),
                    sa.Column('executed_at', sa.DateTime(), nullable=False),
                    sa.Column('reverted_at', sa.DateTime(), nullable=True),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('decision_id')
                    )

    for table in ('user_rate_limits', 'user_shadow_bans', 'user_suspensions'):
        extra = [sa.Column('posts_per_hour', sa.Integer(), nullable=False)] if table == 'user_rate_limits' else []
        op.create_table(table, *_restriction_columns(), *extra, sa.PrimaryKeyConstraint('id'))
        op.create_index(op.f(f'ix_{table}_user_id'), table, ['user_id'])
        op.create_index(op.f(f'ix_{table}_decision_id'), table, ['decision_id'])

    op.create_table('moderation_notifications',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('user_id', sa.String(), nullable=False),
                    sa.Column('decision_id', sa.String(), nullable=False),
                    sa.Column('action', sa.String(), nullable=False),
                    sa.Column('scheduled_for', sa.DateTime(), nullable=False),
                    sa.Column('status', sa.String(), server_default='pending', nullable=False),
                    sa.Column('attempts', sa.Integer(), server_default='0', nullable=False),
                    sa.Column('last_error', sa.Text(), nullable=True),
                    sa.Column('sent_at', sa.DateTime(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_moderation_notifications_user_id'), 'moderation_notifications', ['user_id'])
    op.create_index(op.f('ix_moderation_notifications_decision_id'), 'moderation_notifications', ['decision_id'])
    op.create_index('ix_moderation_notifications_due', 'moderation_notifications', ['status', 'scheduled_for'])

    # Transparency DB outbox
    op.create_table('sor_export_queue',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('statement_id', sa.String(), nullable=False),
                    sa.Column('decision_id', sa.String(), nullable=False),
                    sa.Column('idempotency_key', sa.String(), nullable=False),
                    sa.Column('status', sa.String(), server_default='pending', nullable=False),
                    sa.Column('attempts', sa.Integer(), server_default='0', nullable=False),
                    sa.Column('next_attempt_at', sa.DateTime(), nullable=False),
                    sa.Column('last_error', sa.Text(), nullable=True),
                    sa.Column('transparency_db_id', sa.String(), nullable=True),
                    sa.Column('response', sa.JSON(), nullable=True),
                    sa.Column('submitted_at', sa.DateTime(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('statement_id'),
                    sa.UniqueConstraint('idempotency_key')
                    )
    op.create_index(op.f('ix_sor_export_queue_decision_id'), 'sor_export_queue', ['decision_id'])
    op.create_index('ix_sor_export_queue_due', 'sor_export_queue', ['status', 'next_attempt_at'])

    # Appeals / ODS
    op.create_table('appeals',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('original_decision_id', sa.String(), nullable=False),
                    sa.Column('user_id', sa.String(), nullable=False),
                    sa.Column('appeal_type', sa.String(), nullable=False),
                    sa.Column('counter_arguments', sa.Text(), nullable=False),
                    sa.Column('supporting_evidence', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('reviewer_id', sa.String(), nullable=True),
                    sa.Column('decision', sa.String(), nullable=True),
                    sa.Column('decision_reasoning', sa.Text(), nullable=True),
                    sa.Column('status', sa.String(), server_default='pending', nullable=False),
                    sa.Column('submitted_at', sa.DateTime(), nullable=False),
                    sa.Column('deadline', sa.DateTime(), nullable=False),
                    sa.Column('resolved_at', sa.DateTime(), nullable=True),
                    sa.Column('ods_escalation_id', sa.String(), nullable=True),
                    sa.Column('ods_body_name', sa.String(), nullable=True),
                    sa.Column('ods_submitted_at', sa.DateTime(), nullable=True),
                    sa.Column('ods_resolved_at', sa.DateTime(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_appeals_original_decision_id'), 'appeals', ['original_decision_id'])
    op.create_index(op.f('ix_appeals_user_id'), 'appeals', ['user_id'])
    op.create_index('uq_appeals_active_per_decision_user', 'appeals', ['original_decision_id', 'user_id'],
                    unique=True, postgresql_where=sa.text("status IN ('pending', 'in_review')"))

    op.create_table('ods_escalations',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('appeal_id', sa.String(), nullable=False),
                    sa.Column('ods_body_id', sa.String(), nullable=False),
                    sa.Column('case_number', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), server_default='submitted', nullable=False),
                    sa.Column('submitted_at', sa.DateTime(), nullable=False),
                    sa.Column('target_resolution_date', sa.DateTime(), nullable=False),
                    sa.Column('actual_resolution_date', sa.DateTime(), nullable=True),
                    sa.Column('outcome', sa.String(), nullable=True),
                    sa.Column('outcome_summary', sa.Text(), nullable=True),
                    sa.Column('platform_action_required', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('platform_action_completed', sa.Boolean(), server_default='false', nullable=False),
                    sa.Column('platform_action_completed_at', sa.DateTime(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('appeal_id')
                    )
    op.create_index(op.f('ix_ods_escalations_ods_body_id'), 'ods_escalations', ['ods_body_id'])

    op.create_table('ods_bodies',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('name', sa.String(), nullable=False),
                    sa.Column('jurisdictions', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('specialization', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('submission_url', sa.String(), nullable=True),
                    sa.Column('contact_email', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), server_default='certified', nullable=False),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('name')
                    )

    # SLA monitoring
    op.create_table('sla_alerts',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('report_id', sa.String(), nullable=False),
                    sa.Column('alert_level', sa.String(), nullable=False),
                    sa.Column('threshold_percent', sa.Integer(), nullable=False),
                    sa.Column('severity', sa.String(), nullable=False),
                    sa.Column('elapsed_percent', sa.Float(), nullable=False),
                    sa.Column('sla_deadline', sa.DateTime(), nullable=False),
                    sa.Column('assigned_moderator_id', sa.String(), nullable=True),
                    sa.Column('created_at', sa.DateTime(), nullable=False),
                    sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
                    sa.Column('acknowledged_by', sa.String(), nullable=True),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('report_id', 'alert_level', name='uq_sla_alerts_report_level')
                    )
    op.create_index(op.f('ix_sla_alerts_report_id'), 'sla_alerts', ['report_id'])
    op.create_index(op.f('ix_sla_alerts_assigned_moderator_id'), 'sla_alerts', ['assigned_moderator_id'])

    op.create_table('sla_incidents',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('report_id', sa.String(), nullable=False),
                    sa.Column('breached_at', sa.DateTime(), nullable=False),
                    sa.Column('breach_duration_hours', sa.Float(), nullable=False),
                    sa.Column('severity', sa.String(), nullable=False),
                    sa.Column('escalated_to', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('status', sa.String(), server_default='open', nullable=False),
                    sa.Column('root_cause', sa.Text(), nullable=True),
                    sa.Column('corrective_actions', sa.JSON(), server_default='[]', nullable=False),
                    sa.Column('closed_at', sa.DateTime(), nullable=True),
                    sa.Column('closed_by', sa.String(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('report_id')
                    )


def downgrade() -> None:
    op.drop_table('sla_incidents')
    op.drop_table('sla_alerts')
    op.drop_table('ods_bodies')
    op.drop_table('ods_escalations')
    op.drop_table('appeals')
    op.drop_table('sor_export_queue')
    op.drop_table('moderation_notifications')
    op.drop_table('user_suspensions')
    op.drop_table('user_shadow_bans')
    op.drop_table('user_rate_limits')
    op.drop_table('action_executions')
    op.drop_table('statements_of_reasons')
    op.drop_table('moderation_decisions')
    op.drop_table('moderation_claims')
    op.drop_table('trusted_flaggers')
    op.drop_table('content_snapshots')
    op.drop_table('content_reports')
    op.drop_table('audit_partition_manifests')
    op.drop_table('audit_legal_holds')
    op.drop_table('audit_partitions')
    op.drop_table('audit_signing_keys')
    op.execute("DROP TRIGGER IF EXISTS audit_events_worm_truncate ON audit_events")
    op.execute("DROP TRIGGER IF EXISTS audit_events_worm ON audit_events")
    op.drop_table('audit_events')
    op.execute("DROP FUNCTION IF EXISTS audit_events_reject_mutation()")
    op.drop_table('content_geo_blocks')
    op.drop_table('community_content')
    op.drop_table('auth_users')
