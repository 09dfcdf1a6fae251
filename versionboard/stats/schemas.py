from versionboard.core.schemas import CamelModel


class Stats(CamelModel):
    total_services: int = 0
    prod_ready_services: int = 0
    uat_services: int = 0
    pending_updates: int = 0
