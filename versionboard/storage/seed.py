import logging

from versionboard.core.config import BOOTSTRAP_ADMIN_USERNAME
from versionboard.storage.base import Storage

logger = logging.getLogger(__name__)

SAMPLE_SERVICES = [
    {
        "name": "auth-service",
        "description": "Authentication & Authorization",
        "icon": "shield-alt",
        "icon_color": "blue",
        "available_versions": ["1.1.0", "1.2.0", "1.3.0"],
        "bau_version": "1.2.0",
        "uat_version": "1.3.0",
        "prod_version": "1.1.0",
    },
    {
        "name": "payment-service",
        "description": "Payment Processing",
        "icon": "credit-card",
        "icon_color": "green",
        "available_versions": ["2.4.0", "2.5.0", "2.5.1", "2.6.0"],
        "bau_version": "2.5.0",
        "uat_version": "2.5.1",
        "prod_version": "2.4.0",
    },
    {
        "name": "notification-service",
        "description": "Email & SMS Notifications",
        "icon": "envelope",
        "icon_color": "purple",
        "available_versions": ["1.8.0", "1.8.1", "1.8.2", "1.9.0"],
        "bau_version": "1.8.2",
        "uat_version": "1.9.0",
        "prod_version": "1.8.1",
    },
    {
        "name": "user-service",
        "description": "User Management",
        "icon": "users",
        "icon_color": "yellow",
        "available_versions": ["3.0.5", "3.1.0", "3.1.1", "3.2.0"],
        "bau_version": "3.1.0",
        "uat_version": "3.1.1",
        "prod_version": "3.0.5",
    },
]

SAMPLE_ACTIVITIES = [
    {"service_name": "payment-service", "environment": "uat", "from_version": "2.4.0", "to_version": "2.5.1", "user": "Admin"},
    {"service_name": "auth-service", "environment": "bau", "from_version": "1.1.0", "to_version": "1.2.0", "user": "DevOps"},
    {"service_name": "notification-service", "environment": "prod", "from_version": "1.8.0", "to_version": "1.8.1", "user": "QA Team"},
]


def seed_storage(storage: Storage, sample_data: bool = True, admin_username: str = BOOTSTRAP_ADMIN_USERNAME) -> None:
    """Make sure an admin can log in; optionally load demo services into an empty store."""
    if admin_username and storage.get_user_by_username(admin_username) is None:
        storage.create_user({"username": admin_username, "role": "admin"})
        logger.info("Bootstrapped admin user %s", admin_username)

    if not sample_data or storage.get_all_services():
        return

    for service in SAMPLE_SERVICES:
        storage.create_service(service)
    for activity in SAMPLE_ACTIVITIES:
        storage.create_activity(activity)
    logger.info("Loaded %d sample services", len(SAMPLE_SERVICES))
