from datetime import timedelta

import pytest

from conftest import AUTH_SERVICE, FakeClock, make_storage
from versionboard.activities.schemas import ActivityAction
from versionboard.core.errors import NotFoundError, ValidationError
from versionboard.services.schemas import Environment


def _version_change(version: str, environment: str = "prod", user: str = "alice") -> dict:
    return {"service_name": "auth-service", "environment": environment, "version": version, "user": user}


@pytest.mark.unit
class TestServiceCreation:

    def test_defaults_applied(self, storage):
        service = storage.create_service({"name": "billing"})

        assert service.id
        assert service.icon == "cube"
        assert service.icon_color == "blue"
        assert service.bau_version == service.uat_version == service.prod_version == "0.1.0"
        assert service.available_versions == ["0.1.0"]
        assert service.last_updated is not None

    def test_available_versions_deduplicated_and_blank_free(self, storage):
        service = storage.create_service(
            {"name": "billing", "available_versions": ["1.0.0", " ", "1.0.0", "", "1.1.0 "]}
        )

        assert service.available_versions == ["1.0.0", "1.1.0"]

    def test_environment_versions_need_not_be_known_at_creation(self, storage):
        service = storage.create_service(
            {"name": "billing", "available_versions": ["1.0.0"], "prod_version": "0.9.0"}
        )

        assert service.prod_version == "0.9.0"
        assert service.available_versions == ["1.0.0"]

    def test_blank_name_rejected(self, storage):
        with pytest.raises(ValidationError):
            storage.create_service({"name": "   "})

        assert storage.get_all_services() == []

    def test_duplicate_name_rejected(self, seeded_storage):
        with pytest.raises(ValidationError, match="Invalid data|already exists") as excinfo:
            seeded_storage.create_service({"name": "auth-service"})

        assert excinfo.value.errors[0]["field"] == "name"
        assert len(seeded_storage.get_all_services()) == 1

    def test_names_are_case_sensitive(self, seeded_storage):
        seeded_storage.create_service({"name": "Auth-Service"})

        assert len(seeded_storage.get_all_services()) == 2

    def test_create_with_activity_logs_created(self, storage):
        service = storage.create_service_with_activity({"name": "billing"}, "alice")

        activities = storage.get_all_activities()
        assert len(activities) == 1
        assert activities[0].action == ActivityAction.CREATED
        assert activities[0].service_name == service.name
        assert activities[0].user == "alice"
        assert activities[0].environment is None
        assert "billing" in activities[0].details

    def test_lookups(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        assert seeded_storage.get_service(service.id) == service
        assert seeded_storage.get_service("missing") is None
        assert seeded_storage.get_service_by_name("AUTH-SERVICE") is None

    def test_all_services_sorted_by_name(self, storage):
        for name in ["payment", "Zeta", "auth", "billing"]:
            storage.create_service({"name": name})

        assert [s.name for s in storage.get_all_services()] == ["Zeta", "auth", "billing", "payment"]


@pytest.mark.unit
class TestUpdateServiceVersion:

    def test_known_version_does_not_grow_available_versions(self, seeded_storage):
        service = seeded_storage.update_service_version(_version_change("1.3.0"))

        assert service.prod_version == "1.3.0"
        assert set(service.available_versions) == {"1.1.0", "1.2.0", "1.3.0"}

        activities = seeded_storage.get_all_activities()
        assert len(activities) == 1
        activity = activities[0]
        assert activity.action == ActivityAction.VERSION_CHANGE
        assert activity.environment == Environment.PROD
        assert activity.from_version == "1.1.0"
        assert activity.to_version == "1.3.0"
        assert activity.user == "alice"
        assert activity.details is None

    def test_unseen_version_is_added(self, seeded_storage):
        service = seeded_storage.update_service_version(_version_change("1.4.0"))

        assert set(service.available_versions) == {"1.1.0", "1.2.0", "1.3.0", "1.4.0"}
        assert seeded_storage.get_service_by_name("auth-service").available_versions == service.available_versions

    def test_known_versions_are_never_pruned(self, seeded_storage):
        seeded_storage.update_service_version(_version_change("2.0.0", "bau"))
        seeded_storage.update_service_version(_version_change("2.0.0", "uat"))
        service = seeded_storage.update_service_version(_version_change("2.0.0", "prod"))

        assert set(service.available_versions) == {"1.1.0", "1.2.0", "1.3.0", "2.0.0"}

    def test_deployed_versions_are_reconciled_into_available(self, storage):
        storage.create_service(
            {"name": "auth-service", "available_versions": ["1.0.0"], "bau_version": "0.8.0", "uat_version": "0.9.0"}
        )

        service = storage.update_service_version(_version_change("1.0.0"))

        assert set(service.available_versions) == {"1.0.0", "0.8.0", "0.9.0"}
        for version in service.deployed_versions():
            assert version in service.available_versions

    def test_state_idempotent_but_log_is_not(self, seeded_storage):
        first = seeded_storage.update_service_version(_version_change("1.4.0"))
        second = seeded_storage.update_service_version(_version_change("1.4.0"))

        assert first.model_dump(exclude={"last_updated"}) == second.model_dump(exclude={"last_updated"})
        activities = seeded_storage.get_all_activities()
        assert len(activities) == 2
        assert activities[0].from_version == "1.4.0"
        assert activities[1].from_version == "1.1.0"

    def test_only_target_environment_changes(self, seeded_storage):
        service = seeded_storage.update_service_version(_version_change("1.4.0", "uat"))

        assert service.uat_version == "1.4.0"
        assert service.bau_version == "1.2.0"
        assert service.prod_version == "1.1.0"

    def test_last_updated_restamped(self, seeded_storage):
        before = seeded_storage.get_service_by_name("auth-service").last_updated

        after = seeded_storage.update_service_version(_version_change("1.4.0")).last_updated

        assert after.replace(tzinfo=None) > before.replace(tzinfo=None)

    def test_unknown_service(self, seeded_storage):
        with pytest.raises(NotFoundError):
            seeded_storage.update_service_version({**_version_change("1.0.0"), "service_name": "nope"})

        assert seeded_storage.get_all_activities() == []

    def test_bad_environment_is_validation_error(self, seeded_storage):
        with pytest.raises(ValidationError):
            seeded_storage.update_service_version(_version_change("1.0.0", "staging"))

    def test_anonymous_user_falls_back(self, seeded_storage):
        seeded_storage.update_service_version(_version_change("1.4.0", user=""))

        assert seeded_storage.get_all_activities()[0].user == "Admin"


@pytest.mark.unit
class TestUpdateAndDeleteService:

    def test_partial_update_merges_fields(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        updated = seeded_storage.update_service(
            service.id, {"description": "AuthN", "icon_color": "red"}, "alice"
        )

        assert updated.description == "AuthN"
        assert updated.icon_color == "red"
        assert updated.icon == "shield-alt"
        assert updated.available_versions == service.available_versions
        assert seeded_storage.get_service(service.id).description == "AuthN"

        activity = seeded_storage.get_all_activities()[0]
        assert activity.action == ActivityAction.UPDATED
        assert "description" in activity.details
        assert "icon_color" in activity.details

    def test_update_accepts_camel_case_keys(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        updated = seeded_storage.update_service(service.id, {"iconColor": "green"}, "alice")

        assert updated.icon_color == "green"

    def test_update_missing(self, storage):
        with pytest.raises(NotFoundError):
            storage.update_service("missing", {"description": "x"}, "alice")

        assert storage.get_all_activities() == []

    def test_rename_to_existing_name_rejected(self, seeded_storage):
        other = seeded_storage.create_service({"name": "billing"})

        with pytest.raises(ValidationError):
            seeded_storage.update_service(other.id, {"name": "auth-service"}, "alice")

        assert seeded_storage.get_service(other.id).name == "billing"

    def test_blank_rename_rejected(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        with pytest.raises(ValidationError):
            seeded_storage.update_service(service.id, {"name": " "}, "alice")

    def test_edited_environment_version_becomes_available(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        updated = seeded_storage.update_service(service.id, {"prodVersion": "9.9.0"}, "alice")

        assert updated.prod_version == "9.9.0"
        assert updated.available_versions == ["1.1.0", "1.2.0", "1.3.0", "9.9.0"]
        assert seeded_storage.get_service(service.id).available_versions == updated.available_versions
        assert "prod_version" in seeded_storage.get_all_activities()[0].details

    def test_emptied_available_versions_keep_deployed_ones(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        updated = seeded_storage.update_service(service.id, {"available_versions": []}, "alice")

        assert set(updated.available_versions) == {"1.1.0", "1.2.0", "1.3.0"}
        assert seeded_storage.get_stats().prod_ready_services == 1

    def test_replaced_available_versions_are_normalised(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        updated = seeded_storage.update_service(
            service.id, {"available_versions": ["2.0.0", " ", "2.0.0"], "bau_version": "2.0.0"}, "alice"
        )

        assert updated.available_versions == ["2.0.0", "1.3.0", "1.1.0"]

    def test_blank_environment_version_rejected(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        with pytest.raises(ValidationError):
            seeded_storage.update_service(service.id, {"uat_version": "  "}, "alice")

        assert seeded_storage.get_service(service.id).uat_version == "1.3.0"
        assert all(a.action != ActivityAction.UPDATED for a in seeded_storage.get_all_activities())

    def test_timestamps_are_utc_aware(self, seeded_storage):
        seeded_storage.update_service_version(_version_change("1.3.0"))
        service = seeded_storage.get_service_by_name("auth-service")

        assert service.last_updated.utcoffset() == timedelta(0)
        assert all(a.timestamp.utcoffset() == timedelta(0) for a in seeded_storage.get_all_activities())

    def test_delete_logs_then_removes(self, seeded_storage):
        service = seeded_storage.get_service_by_name("auth-service")

        seeded_storage.delete_service(service.id, "alice")

        assert seeded_storage.get_service(service.id) is None
        activities = seeded_storage.get_all_activities()
        assert len(activities) == 1
        assert activities[0].action == ActivityAction.DELETED
        assert activities[0].service_name == "auth-service"

    def test_delete_missing_writes_no_activity(self, storage):
        with pytest.raises(NotFoundError):
            storage.delete_service("missing", "alice")

        assert storage.get_all_activities() == []

    def test_activities_survive_service_deletion(self, seeded_storage):
        seeded_storage.update_service_version(_version_change("1.4.0"))
        service = seeded_storage.get_service_by_name("auth-service")

        seeded_storage.delete_service(service.id, "alice")

        actions = [a.action for a in seeded_storage.get_all_activities()]
        assert actions == [ActivityAction.DELETED, ActivityAction.VERSION_CHANGE]


@pytest.mark.unit
class TestActivities:

    def test_create_activity_defaults(self, storage):
        activity = storage.create_activity(
            {"service_name": "auth-service", "environment": "bau", "from_version": "1.0", "to_version": "1.1"}
        )

        assert activity.id
        assert activity.action == ActivityAction.VERSION_CHANGE
        assert activity.user == "Admin"
        assert activity.timestamp is not None

    def test_version_fields_only_on_version_change(self, storage):
        with pytest.raises(ValidationError):
            storage.create_activity(
                {"action": "created", "service_name": "auth-service", "environment": "bau", "details": "x"}
            )

    def test_version_change_requires_environment(self, storage):
        with pytest.raises(ValidationError):
            storage.create_activity({"service_name": "auth-service", "to_version": "1.0"})

    def test_sorted_newest_first(self, storage):
        for version in ["1.0", "1.1", "1.2"]:
            storage.create_activity({"service_name": "svc", "environment": "prod", "to_version": version})

        activities = storage.get_all_activities()
        timestamps = [a.timestamp for a in activities]
        assert timestamps == sorted(timestamps, reverse=True)
        assert [a.to_version for a in activities] == ["1.2", "1.1", "1.0"]

    @pytest.mark.parametrize("backend", ["memory", "sql"])
    def test_timestamp_ties_broken_by_insertion_order(self, backend):
        store = make_storage(backend, FakeClock(step=timedelta(0)))
        try:
            for version in ["1.0", "1.1", "1.2"]:
                store.create_activity({"service_name": "svc", "environment": "prod", "to_version": version})

            assert [a.to_version for a in store.get_all_activities()] == ["1.2", "1.1", "1.0"]
        finally:
            store.close()


@pytest.mark.unit
class TestStats:

    def test_empty(self, storage):
        stats = storage.get_stats()

        assert stats.total_services == 0
        assert stats.prod_ready_services == 0
        assert stats.uat_services == 0
        assert stats.pending_updates == 0

    def test_counts(self, storage):
        storage.create_service(AUTH_SERVICE)
        storage.create_service(
            {"name": "in-sync", "available_versions": ["2.0"], "bau_version": "2.0", "uat_version": "2.0", "prod_version": "2.0"}
        )
        storage.create_service(
            {"name": "unknown-prod", "available_versions": ["3.0"], "bau_version": "3.0", "uat_version": "2.9", "prod_version": "2.9"}
        )

        stats = storage.get_stats()

        assert stats.total_services == 3
        assert stats.prod_ready_services == 2
        assert stats.uat_services == 1
        assert stats.pending_updates == 2

    def test_recomputed_after_mutation(self, seeded_storage):
        assert seeded_storage.get_stats().uat_services == 1

        seeded_storage.update_service_version(_version_change("1.3.0", "prod"))
        seeded_storage.update_service_version(_version_change("1.3.0", "bau"))

        stats = seeded_storage.get_stats()
        assert stats.uat_services == 0
        assert stats.pending_updates == 0
        assert stats.total_services == len(seeded_storage.get_all_services())


@pytest.mark.unit
class TestUsers:

    def test_create_and_lookup(self, storage):
        user = storage.create_user({"username": "bob"})

        assert user.role == "user"
        assert storage.get_user(user.id) == user
        assert storage.get_user_by_username("bob") == user
        assert storage.get_user_by_username("carol") is None

    def test_username_unique(self, storage):
        storage.create_user({"username": "bob", "role": "admin"})

        with pytest.raises(ValidationError):
            storage.create_user({"username": "bob"})

    def test_bad_role(self, storage):
        with pytest.raises(ValidationError):
            storage.create_user({"username": "bob", "role": "root"})


REQUEST = {
    "id": "REQ-1",
    "request_name": "March release",
    "bau_services": "auth-service\npayment-service\n",
    "bau_delivery_date": "2024-03-01",
    "jira_epic_link": "https://jira.example.com/browse/EPIC-1",
}


@pytest.mark.unit
class TestRolloutRequests:

    def test_create_and_get(self, storage):
        request = storage.create_request(REQUEST)

        assert request.id == "REQ-1"
        assert request.uat_services == ""
        assert request.created_at is not None
        fetched = storage.get_request("REQ-1")
        assert fetched.request_name == "March release"
        assert fetched.bau_delivery_date.isoformat() == "2024-03-01"
        assert fetched.service_names(Environment.BAU) == ["auth-service", "payment-service"]

    def test_needs_some_services(self, storage):
        with pytest.raises(ValidationError):
            storage.create_request({"id": "REQ-2", "request_name": "Empty", "bau_services": " ", "uat_services": ""})

        assert storage.get_all_requests() == []

    def test_duplicate_id_rejected(self, storage):
        storage.create_request(REQUEST)

        with pytest.raises(ValidationError):
            storage.create_request(REQUEST)

    def test_listed_newest_first(self, storage):
        storage.create_request(REQUEST)
        storage.create_request({**REQUEST, "id": "REQ-2"})

        assert [r.id for r in storage.get_all_requests()] == ["REQ-2", "REQ-1"]

    def test_partial_update(self, storage):
        storage.create_request(REQUEST)

        updated = storage.update_request("REQ-1", {"uat_services": "user-service", "notes": "ship it"})

        assert updated.uat_services == "user-service"
        assert updated.bau_services == REQUEST["bau_services"]
        assert storage.get_request("REQ-1").notes == "ship it"

    def test_update_clears_optional_date(self, storage):
        storage.create_request(REQUEST)

        updated = storage.update_request("REQ-1", {"bau_delivery_date": ""})

        assert updated.bau_delivery_date is None

    def test_update_cannot_blank_both_service_lists(self, storage):
        storage.create_request(REQUEST)

        with pytest.raises(ValidationError):
            storage.update_request("REQ-1", {"bau_services": ""})

        assert storage.get_request("REQ-1").bau_services == REQUEST["bau_services"]

    def test_update_and_delete_missing(self, storage):
        with pytest.raises(NotFoundError):
            storage.update_request("nope", {"notes": "x"})
        with pytest.raises(NotFoundError):
            storage.delete_request("nope")

    def test_delete(self, storage):
        storage.create_request(REQUEST)

        storage.delete_request("REQ-1")

        assert storage.get_request("REQ-1") is None

    def test_update_rejects_blank_request_name(self, storage):
        storage.create_request(REQUEST)

        with pytest.raises(ValidationError):
            storage.update_request("REQ-1", {"request_name": "   "})

        assert storage.get_request("REQ-1").request_name == "March release"

    def test_update_strips_request_name(self, storage):
        storage.create_request(REQUEST)

        assert storage.update_request("REQ-1", {"requestName": " April release "}).request_name == "April release"
