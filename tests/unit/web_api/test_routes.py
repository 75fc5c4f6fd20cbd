from taskweave.common.exceptions import (
    AuthenticationError,
    ConflictError,
    DependencyUnmetError,
    InternalError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from taskweave.web_api.deps import get_expected_version
from taskweave.web_api.exceptions import status_for
from taskweave.web_api.routes import api_router
from taskweave.web_api.routes.v1 import v1_router


def test_api_router_has_routes():
    assert len(api_router.routes) > 0


def test_v1_router_has_core_prefixes():
    paths = {route.path for route in v1_router.routes if hasattr(route, "path")}
    assert any(path.startswith("/tasks") for path in paths)
    assert any(path.startswith("/users") for path in paths)
    assert any(path.startswith("/ws") for path in paths)


def test_status_mapping():
    assert status_for(ValidationError("x")) == 400
    assert status_for(DependencyUnmetError("t1", ["t0"])) == 400
    assert status_for(NotFoundError("任务", "t1")) == 404
    assert status_for(ConflictError("x")) == 409
    assert status_for(VersionConflictError("t1", 1, 2)) == 409
    assert status_for(AuthenticationError()) == 401
    assert status_for(InternalError()) == 500


def test_expected_version_header():
    assert get_expected_version(None) is None
    assert get_expected_version("3") == 3
    assert get_expected_version('"4"') == 4
    assert get_expected_version('W/"5"') == 5
