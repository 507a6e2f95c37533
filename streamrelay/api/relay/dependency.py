from streamrelay.domain.relay.relay_domain import RelayService
from streamrelay.domain.status.status_domain import StatusReporter

# Singleton instances shared by the socket handler and the status routes
_relay_service = RelayService()
_status_reporter = StatusReporter(_relay_service)


def get_relay_service() -> RelayService:
    """Get the singleton RelayService instance."""
    return _relay_service


def get_status_reporter() -> StatusReporter:
    """Get the singleton StatusReporter instance."""
    return _status_reporter
