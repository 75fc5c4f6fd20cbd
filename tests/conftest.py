import pytest
import pytest_asyncio

from taskweave.application.services import IdentityService, MutationGateway
from taskweave.domain.events import Event, EventPublisher
from taskweave.domain.schemas import UserCreateRequest
from taskweave.infrastructure.store import InMemoryStore


class RecordingPublisher(EventPublisher):
    """记录发布事件的发布者"""

    def __init__(self):
        self.events: list[Event] = []

    def publish(self, event: Event) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.type for e in self.events]


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def identity(store):
    return IdentityService(store)


@pytest.fixture
def gateway(store, publisher):
    return MutationGateway(store, publisher=publisher, cycle_check=True)


@pytest_asyncio.fixture
async def alice(identity):
    user, _ = await identity.register(UserCreateRequest(username="alice", email="alice@example.com"))
    return user
