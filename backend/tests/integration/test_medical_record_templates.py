"""
Integration tests for the medical record template API.
"""
import pytest

from auth.dependencies import UserContext
from core.constants import DEFAULT_TEMPLATE_TENANT_ID
from models import MedicalRecordTemplate, TemplateUsage
from tests.conftest import (
    ADMIN_USER_ID,
    OTHER_TENANT_ID,
    PRACTITIONER_USER_ID,
    TENANT_ID,
    active_defaults,
    create_jwt_token,
    make_template,
)

BASE_URL = "/api/clinic/medical-record-templates"

CONSULTATION_PAYLOAD = {
    "name": "General Assessment",
    "template_type": "consultation",
    "fields": {
        "chief_complaint": {"type": "textarea", "label": "Chief Complaint", "required": True},
        "temperature": {"type": "number", "label": "Temperature", "validation": {"min": 30, "max": 45}},
        "severity": {"type": "select", "label": "Severity", "options": ["low", "medium", "high"]},
        "status": {"type": "text"},
    },
    "default_values": {"status": "draft", "severity": "low"},
}


class TestAuthentication:

    def test_requires_credentials(self, client):
        response = client.get(BASE_URL)

        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get(BASE_URL, headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_bearer_token_scopes_to_tenant(self, client, db_session):
        make_template(db_session, name="Mine")
        make_template(db_session, tenant_id=OTHER_TENANT_ID, name="Theirs")
        token = create_jwt_token(PRACTITIONER_USER_ID, TENANT_ID, ["practitioner"])

        response = client.get(BASE_URL, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert [t["name"] for t in response.json()["templates"]] == ["Mine"]

    def test_mutations_require_admin(self, as_user, practitioner_context):
        client = as_user(practitioner_context)

        response = client.post(BASE_URL, json=CONSULTATION_PAYLOAD)

        assert response.status_code == 403


class TestTemplateCrud:

    def test_create_and_get(self, as_user, admin_context):
        client = as_user(admin_context)

        response = client.post(BASE_URL, json=CONSULTATION_PAYLOAD)

        assert response.status_code == 201
        created = response.json()
        assert created["tenant_id"] == TENANT_ID
        assert created["created_by"] == ADMIN_USER_ID
        assert list(created["fields"]) == ["chief_complaint", "temperature", "severity", "status"]
        assert created["fields"]["temperature"]["validation"] == {"min": 30.0, "max": 45.0}
        assert created["is_default"] is False
        assert created["version"] == 1

        fetched = client.get(f"{BASE_URL}/{created['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["name"] == "General Assessment"

    def test_create_rejects_unknown_template_type(self, as_user, admin_context):
        client = as_user(admin_context)

        response = client.post(BASE_URL, json={**CONSULTATION_PAYLOAD, "template_type": "triage"})

        assert response.status_code == 422

    def test_create_without_type_or_parent(self, as_user, admin_context):
        client = as_user(admin_context)
        payload = {k: v for k, v in CONSULTATION_PAYLOAD.items() if k != "template_type"}

        response = client.post(BASE_URL, json=payload)

        assert response.status_code == 400

    def test_create_from_parent(self, as_user, admin_context, db_session):
        parent = make_template(db_session, name="Cardio", specialty="cardiology")
        client = as_user(admin_context)

        response = client.post(BASE_URL, json={"name": "Cardio v2", "parent_template_id": parent.id})

        assert response.status_code == 201
        data = response.json()
        assert data["parent_template_id"] == parent.id
        assert data["specialty"] == "cardiology"
        assert data["template_type"] == "consultation"

    def test_get_other_tenant_template_is_not_found(self, as_user, admin_context, db_session):
        theirs = make_template(db_session, tenant_id=OTHER_TENANT_ID)
        client = as_user(admin_context)

        response = client.get(f"{BASE_URL}/{theirs.id}")

        assert response.status_code == 404

    def test_list_pagination_envelope(self, as_user, practitioner_context, db_session):
        for i in range(3):
            make_template(db_session, name=f"Template {i}")
        make_template(db_session, name="Inactive", is_active=False)
        client = as_user(practitioner_context)

        response = client.get(BASE_URL, params={"limit": 2, "offset": 0})

        assert response.status_code == 200
        data = response.json()
        assert [t["name"] for t in data["templates"]] == ["Template 0", "Template 1"]
        assert data["pagination"] == {"total": 3, "limit": 2, "offset": 0, "pages": 2}

    def test_list_can_include_inactive(self, as_user, practitioner_context, db_session):
        make_template(db_session, name="Current")
        make_template(db_session, name="Retired", is_active=False)
        client = as_user(practitioner_context)

        active_only = client.get(BASE_URL).json()
        everything = client.get(BASE_URL, params={"include_inactive": "true"}).json()
        inactive_only = client.get(BASE_URL, params={"is_active": "false"}).json()

        assert [t["name"] for t in active_only["templates"]] == ["Current"]
        assert [t["name"] for t in everything["templates"]] == ["Current", "Retired"]
        assert [t["name"] for t in inactive_only["templates"]] == ["Retired"]

    def test_list_filters_and_search(self, as_user, practitioner_context, db_session):
        make_template(db_session, name="Chest Pain", specialty="cardiology")
        make_template(db_session, name="Headache", specialty="neurology")
        client = as_user(practitioner_context)

        by_specialty = client.get(BASE_URL, params={"specialty": "neurology"}).json()
        by_search = client.get(BASE_URL, params={"search": "chest"}).json()

        assert [t["name"] for t in by_specialty["templates"]] == ["Headache"]
        assert [t["name"] for t in by_search["templates"]] == ["Chest Pain"]

    def test_partial_update(self, as_user, admin_context, db_session):
        template = make_template(db_session, name="Original", specialty="cardiology")
        client = as_user(admin_context)

        response = client.put(f"{BASE_URL}/{template.id}", json={"specialty": None, "version": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Original"
        assert data["specialty"] is None
        assert data["version"] == 2

    def test_update_rejects_unknown_fields(self, as_user, admin_context, db_session):
        template = make_template(db_session)
        client = as_user(admin_context)

        response = client.put(f"{BASE_URL}/{template.id}", json={"tenant_id": OTHER_TENANT_ID})

        assert response.status_code == 422

    def test_update_inactive_template_conflicts(self, as_user, admin_context, db_session):
        template = make_template(db_session, is_active=False)
        client = as_user(admin_context)

        response = client.put(f"{BASE_URL}/{template.id}", json={"name": "Renamed"})

        assert response.status_code == 409
        assert response.json()["type"] == "template_inactive"

    def test_delete_is_soft(self, as_user, admin_context, db_session):
        template = make_template(db_session)
        client = as_user(admin_context)

        response = client.delete(f"{BASE_URL}/{template.id}")

        assert response.status_code == 200
        db_session.expire_all()
        stored = db_session.get(MedicalRecordTemplate, template.id)
        assert stored is not None
        assert stored.is_active is False
        assert stored.updated_by == ADMIN_USER_ID

        listed = client.get(BASE_URL).json()
        assert listed["pagination"]["total"] == 0

    def test_delete_missing_template(self, as_user, admin_context):
        client = as_user(admin_context)

        assert client.delete(f"{BASE_URL}/4242").status_code == 404


class TestDefaultPromotion:

    def test_update_promotes_and_demotes(self, as_user, admin_context, db_session):
        """T1 and T2 share a bucket with T1 default; promoting T2 demotes T1."""
        t1 = make_template(db_session, name="T1", is_default=True)
        t2 = make_template(db_session, name="T2")
        client = as_user(admin_context)

        response = client.put(f"{BASE_URL}/{t2.id}", json={"is_default": True})

        assert response.status_code == 200
        assert response.json()["is_default"] is True
        assert client.get(f"{BASE_URL}/{t1.id}").json()["is_default"] is False

    def test_exactly_one_default_after_many_promotions(self, as_user, admin_context, db_session):
        client = as_user(admin_context)
        ids = []
        for i in range(4):
            response = client.post(BASE_URL, json={**CONSULTATION_PAYLOAD, "name": f"T{i}", "is_default": True})
            assert response.status_code == 201
            ids.append(response.json()["id"])
        client.put(f"{BASE_URL}/{ids[1]}", json={"is_default": True})

        defaults = active_defaults(db_session, TENANT_ID, "consultation", None)
        assert [t.id for t in defaults] == [ids[1]]


class TestApplyAndValidate:

    def test_apply_merges_and_reports_errors(self, as_user, practitioner_context, db_session):
        template = make_template(
            db_session,
            fields=CONSULTATION_PAYLOAD["fields"],
            default_values={"status": "draft", "severity": "low"},
        )
        client = as_user(practitioner_context)

        response = client.post(
            f"{BASE_URL}/{template.id}/apply",
            json={"custom_values": {"status": "final", "temperature": 50}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["populated_fields"] == {"status": "final", "severity": "low", "temperature": 50}
        assert data["validation_errors"] == {
            "chief_complaint": ["Chief Complaint is required"],
            "temperature": ["Temperature must be no more than 45"],
        }
        assert data["template"]["id"] == template.id

    def test_apply_valid_data_has_no_errors(self, as_user, practitioner_context, db_session):
        template = make_template(db_session, fields={"status": {"type": "text"}}, default_values={"status": "draft"})
        client = as_user(practitioner_context)

        response = client.post(f"{BASE_URL}/{template.id}/apply", json={"custom_values": {}})

        assert response.status_code == 200
        assert response.json()["validation_errors"] is None

    def test_apply_tolerates_unparseable_stored_definitions(self, as_user, practitioner_context, db_session):
        template = make_template(
            db_session,
            fields={"sig": {"type": "signature"}, "dose": {"type": "number"}},
            default_values={"dose": 2},
            validation_rules={"dose": 5},
        )
        client = as_user(practitioner_context)

        response = client.post(f"{BASE_URL}/{template.id}/apply", json={"custom_values": {}})

        assert response.status_code == 200
        data = response.json()
        assert data["populated_fields"] == {"dose": 2}
        assert data["validation_errors"] is None
        assert set(data["validation_warnings"]) == {"sig", "dose"}
        assert list(data["template"]["fields"]) == ["dose"]

    def test_apply_inactive_template(self, as_user, practitioner_context, db_session):
        template = make_template(db_session, is_active=False)
        client = as_user(practitioner_context)

        response = client.post(f"{BASE_URL}/{template.id}/apply", json={"custom_values": {}})

        assert response.status_code == 409

    def test_validate(self, as_user, practitioner_context, db_session):
        template = make_template(db_session, fields={"dose": {"type": "number", "validation": {"max": 10}}})
        client = as_user(practitioner_context)

        response = client.post(f"{BASE_URL}/{template.id}/validate", json={"data": {"dose": 15}})

        assert response.status_code == 200
        data = response.json()
        assert data["is_valid"] is False
        assert data["errors"] == {"dose": ["dose must be no more than 10"]}
        assert data["warnings"] == {}


class TestUsageStatisticsAndRecommendations:

    def test_record_usage(self, as_user, practitioner_context, db_session):
        template = make_template(db_session)
        client = as_user(practitioner_context)

        response = client.post(f"{BASE_URL}/usage", json={
            "template_id": template.id,
            "medical_record_id": 77,
            "customizations": {"status": "final"},
            "completion_time_seconds": 120,
        })

        assert response.status_code == 201
        data = response.json()
        assert data["user_id"] == PRACTITIONER_USER_ID
        assert data["completion_time_seconds"] == 120
        assert db_session.query(TemplateUsage).count() == 1

    def test_record_usage_rejects_negative_completion_time(self, as_user, practitioner_context, db_session):
        template = make_template(db_session)
        client = as_user(practitioner_context)

        response = client.post(f"{BASE_URL}/usage", json={
            "template_id": template.id, "medical_record_id": 77, "completion_time_seconds": -5,
        })

        assert response.status_code == 422

    def test_record_usage_for_other_tenant_template(self, as_user, practitioner_context, db_session):
        theirs = make_template(db_session, tenant_id=OTHER_TENANT_ID)
        client = as_user(practitioner_context)

        response = client.post(f"{BASE_URL}/usage", json={"template_id": theirs.id, "medical_record_id": 77})

        assert response.status_code == 404

    def test_statistics(self, as_user, practitioner_context, db_session):
        used = make_template(db_session, name="Used")
        make_template(db_session, name="Unused", template_type="follow_up")
        client = as_user(practitioner_context)
        for seconds in (100, 300):
            client.post(f"{BASE_URL}/usage", json={
                "template_id": used.id, "medical_record_id": 1, "completion_time_seconds": seconds,
            })

        response = client.get(f"{BASE_URL}/statistics")

        assert response.status_code == 200
        stats = response.json()["statistics"]
        assert [s["template_name"] for s in stats] == ["Used", "Unused"]
        assert stats[0]["usage_count"] == 2
        assert stats[0]["unique_users"] == 1
        assert stats[0]["avg_completion_time"] == pytest.approx(200.0)
        assert stats[1]["usage_count"] == 0

    def test_recommendations(self, as_user, practitioner_context, db_session):
        cardio = make_template(db_session, name="Cardio", specialty="cardiology")
        generic = make_template(db_session, name="Generic", template_type="follow_up")
        make_template(db_session, name="Neuro", specialty="neurology")
        client = as_user(practitioner_context)
        client.post(f"{BASE_URL}/usage", json={"template_id": generic.id, "medical_record_id": 1})

        response = client.get(f"{BASE_URL}/recommendations", params={"specialty": "cardiology"})

        assert response.status_code == 200
        recommendations = response.json()["recommendations"]
        assert [r["template_id"] for r in recommendations] == [cardio.id, generic.id]
        assert recommendations[1]["user_usage_count"] == 1


class TestCopyDefaults:

    def test_copy_defaults(self, as_user, db_session):
        make_template(db_session, tenant_id=DEFAULT_TEMPLATE_TENANT_ID, name="Seed Consult", is_default=True)
        make_template(db_session, tenant_id=DEFAULT_TEMPLATE_TENANT_ID, name="Seed Follow-up",
                      template_type="follow_up")
        client = as_user(UserContext(user_id=ADMIN_USER_ID, tenant_id="tenant_new", roles=["admin"]))

        response = client.post(f"{BASE_URL}/copy-defaults")

        assert response.status_code == 200
        assert response.json() == {"copied": 2}
        listed = client.get(BASE_URL).json()
        assert listed["pagination"]["total"] == 2
        assert listed["templates"][0]["name"] == "Seed Consult"
        assert listed["templates"][0]["is_default"] is True

    def test_copy_into_seed_tenant_is_rejected(self, as_user):
        client = as_user(UserContext(user_id=ADMIN_USER_ID, tenant_id=DEFAULT_TEMPLATE_TENANT_ID, roles=["admin"]))

        response = client.post(f"{BASE_URL}/copy-defaults")

        assert response.status_code == 400


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
