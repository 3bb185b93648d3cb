"""
Unit tests for TemplateUsageService.
"""
import pytest
from sqlalchemy.exc import SQLAlchemyError

from models import ImmutableUsageRecordError, TemplateUsage
from services.template_exceptions import TemplatePersistenceError
from services.template_usage_service import TemplateUsageService
from tests.conftest import OTHER_TENANT_ID, TENANT_ID, make_template


class TestRecordUsage:

    def test_record_usage(self, db_session):
        template = make_template(db_session)

        usage = TemplateUsageService.record_usage(
            db_session,
            TENANT_ID,
            user_id=202,
            template_id=template.id,
            medical_record_id=9001,
            customizations={"status": "final"},
            completion_time_seconds=340,
        )

        assert usage.id is not None
        assert usage.template_id == template.id
        assert usage.medical_record_id == 9001
        assert usage.user_id == 202
        assert usage.customizations == {"status": "final"}
        assert usage.completion_time_seconds == 340
        assert usage.used_at is not None

    def test_customizations_default_to_empty(self, db_session):
        template = make_template(db_session)

        usage = TemplateUsageService.record_usage(db_session, TENANT_ID, 202, template.id, 9001)

        assert usage.customizations == {}
        assert usage.completion_time_seconds is None

    def test_negative_completion_time_is_rejected(self, db_session):
        template = make_template(db_session)

        with pytest.raises(ValueError):
            TemplateUsageService.record_usage(
                db_session, TENANT_ID, 202, template.id, 9001, completion_time_seconds=-1
            )

    def test_storage_failure_is_wrapped_with_cause(self, db_session, monkeypatch):
        template = make_template(db_session)
        cause = SQLAlchemyError("disk full")

        def failing_commit():
            raise cause

        monkeypatch.setattr(db_session, "commit", failing_commit)

        with pytest.raises(TemplatePersistenceError) as exc_info:
            TemplateUsageService.record_usage(db_session, TENANT_ID, 202, template.id, 9001)

        assert exc_info.value.cause is cause


class TestUsageImmutability:

    def test_update_is_rejected(self, db_session):
        template = make_template(db_session)
        usage = TemplateUsageService.record_usage(db_session, TENANT_ID, 202, template.id, 9001)

        usage.completion_time_seconds = 10
        with pytest.raises(ImmutableUsageRecordError):
            db_session.flush()
        db_session.rollback()

    def test_delete_is_rejected(self, db_session):
        template = make_template(db_session)
        usage = TemplateUsageService.record_usage(db_session, TENANT_ID, 202, template.id, 9001)

        db_session.delete(usage)
        with pytest.raises(ImmutableUsageRecordError):
            db_session.flush()
        db_session.rollback()
        assert db_session.query(TemplateUsage).count() == 1


class TestGetStatistics:

    def test_aggregates_per_template(self, db_session):
        popular = make_template(db_session, name="Popular")
        rare = make_template(db_session, name="Rare", template_type="follow_up")
        unused = make_template(db_session, name="Unused", template_type="emergency")
        retired = make_template(db_session, name="Retired", template_type="procedure", is_active=False)

        for user_id, seconds in [(1, 100), (1, 200), (2, None)]:
            TemplateUsageService.record_usage(
                db_session, TENANT_ID, user_id, popular.id, 1, completion_time_seconds=seconds
            )
        TemplateUsageService.record_usage(db_session, TENANT_ID, 3, rare.id, 2, completion_time_seconds=60)
        TemplateUsageService.record_usage(db_session, TENANT_ID, 3, retired.id, 3)

        stats = {s.template_name: s for s in TemplateUsageService.get_statistics(db_session, TENANT_ID)}

        assert stats["Popular"].usage_count == 3
        assert stats["Popular"].unique_users == 2
        assert stats["Popular"].avg_completion_time == pytest.approx(150.0)
        assert stats["Popular"].last_used is not None
        assert stats["Rare"].usage_count == 1
        assert stats["Unused"].usage_count == 0
        assert stats["Unused"].unique_users == 0
        assert stats["Unused"].avg_completion_time is None
        assert stats["Unused"].last_used is None
        assert stats["Retired"].usage_count == 1
        assert stats["Popular"].template_id == popular.id
        assert stats["Unused"].template_id == unused.id

    def test_ordered_by_usage_then_name(self, db_session):
        b = make_template(db_session, name="B")
        make_template(db_session, name="A", template_type="follow_up")
        c = make_template(db_session, name="C", template_type="emergency")
        TemplateUsageService.record_usage(db_session, TENANT_ID, 1, c.id, 1)
        TemplateUsageService.record_usage(db_session, TENANT_ID, 1, c.id, 2)
        TemplateUsageService.record_usage(db_session, TENANT_ID, 1, b.id, 3)

        names = [s.template_name for s in TemplateUsageService.get_statistics(db_session, TENANT_ID)]

        assert names == ["C", "B", "A"]

    def test_tenant_scoping(self, db_session):
        mine = make_template(db_session, name="Mine")
        make_template(db_session, tenant_id=OTHER_TENANT_ID, name="Theirs")
        TemplateUsageService.record_usage(db_session, TENANT_ID, 1, mine.id, 1)

        stats = TemplateUsageService.get_statistics(db_session, TENANT_ID)

        assert [s.template_name for s in stats] == ["Mine"]
