import pytest

from helpers.funnel import NOW, LANDING_PAGE
from lead_funnel.funnel import FunnelStore
from lead_funnel.models.session import TrackingMetadata
from lead_funnel.session import FormSession


@pytest.fixture(scope="session")
def store():
    """Load the shipped funnels once for the whole test session."""
    s = FunnelStore()
    s.load()
    return s


@pytest.fixture
def graph(store):
    return store.get_graph("commercial_mva")


@pytest.fixture
def tracking():
    return TrackingMetadata.from_landing_page(
        LANDING_PAGE, created_at=NOW, user_agent="pytest-agent", referrer="https://google.com/",
    )


@pytest.fixture
def new_session(graph, tracking):
    """Factory for sessions on the commercial funnel with a frozen clock."""
    def _make(clock=lambda: NOW, **kwargs):
        return FormSession(graph, tracking=tracking, clock=clock, **kwargs)
    return _make
