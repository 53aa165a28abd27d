import copy
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LLM_API_KEY"] = ""
os.environ["SENDGRID_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from taskdesk.api.deps import get_mailer, get_provider_factory
from taskdesk.core.security import Principal, get_current_principal
from taskdesk.db.session import build_engine, get_db, init_db
from taskdesk.main import app
from taskdesk.models import Issue, TeamRoleEnum
from taskdesk.services import team_service as team_service_module
from taskdesk.services.issue_service import IssueService
from taskdesk.services.llm_client import Completion, ToolCall
from taskdesk.services.member_service import MemberService
from taskdesk.services.orchestrator import CommandOrchestrator
from taskdesk.services.team_service import TeamService
from taskdesk.services.workflow_state_service import WorkflowStateService

ADMIN = Principal(user_id="user-admin", display_name="Alice Admin", email="alice@example.com")
DEVELOPER = Principal(user_id="user-dev", display_name="Dev Dan", email="dan@example.com")
VIEWER = Principal(user_id="user-viewer", display_name="Vera Viewer", email="vera@example.com")
OUTSIDER = Principal(user_id="user-outsider", display_name="Oscar Outsider", email="oscar@example.com")


class FakeMailer:
    """Records invitation emails instead of sending them."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def __call__(self, email, team_name, inviter_name, role, invitation_id):
        if self.fail:
            raise RuntimeError("mail server unreachable")
        self.sent.append({
            "email": email,
            "team_name": team_name,
            "inviter_name": inviter_name,
            "role": role,
            "invitation_id": invitation_id,
        })


class ScriptedProvider:
    """Completion provider that replays queued completions, then answers plainly."""

    def __init__(self):
        self.script = []
        self.calls = []
        self.api_keys = []
        self.on_complete = None

    def factory(self, api_key):
        self.api_keys.append(api_key)
        return self

    def queue_tool(self, name, arguments, call_id=None, text=""):
        call_id = call_id or f"call_{len(self.script)}"
        raw = arguments if isinstance(arguments, str) else ""
        parsed = None if isinstance(arguments, str) else arguments
        self.script.append(Completion(
            text=text, tool_calls=[ToolCall(id=call_id, name=name, arguments=parsed, raw_arguments=raw)],
        ))
        return self

    def queue_reply(self, text):
        self.script.append(Completion(text=text))
        return self

    def complete(self, system_prompt, messages, tools, timeout):
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": copy.deepcopy(messages),
            "tools": tools,
            "timeout": timeout,
        })
        if self.on_complete is not None:
            self.on_complete()
        if self.script:
            return self.script.pop(0)
        return Completion(text="All done.")


class Acting:
    """Mutable holder for the principal the test client authenticates as."""

    def __init__(self, principal):
        self.principal = principal


@pytest.fixture(autouse=True)
def reset_known_teams():
    team_service_module._known_teams.clear()
    yield
    team_service_module._known_teams.clear()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def team(db):
    """Engineering team with an admin, a developer and a viewer."""
    team = TeamService.create(db, "Engineering", "ENG", ADMIN)
    MemberService.add(db, team.id, DEVELOPER.user_id, DEVELOPER.display_name, DEVELOPER.email,
                      TeamRoleEnum.developer)
    MemberService.add(db, team.id, VIEWER.user_id, VIEWER.display_name, VIEWER.email, TeamRoleEnum.viewer)
    return team


@pytest.fixture
def other_team(db):
    return TeamService.create(db, "Marketing", "MKT", OUTSIDER)


@pytest.fixture
def states(db, team):
    return {state.name: state for state in WorkflowStateService.list_states(db, team.id)}


@pytest.fixture
def make_issue(db, team, states):
    def _make(title, state="Todo", **kwargs):
        return IssueService.create(db, team.id, ADMIN, title, states[state].id, **kwargs)
    return _make


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def orchestrator(db, team, mailer):
    return CommandOrchestrator(db, team.id, ADMIN, mailer=mailer)


@pytest.fixture
def issue_count(db):
    def _count(team_id):
        return db.query(Issue).filter(Issue.team_id == team_id).count()
    return _count


@pytest.fixture
def acting():
    return Acting(ADMIN)


@pytest.fixture
def client(db, acting, mailer, provider):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_principal] = lambda: acting.principal
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_provider_factory] = lambda: provider.factory
    yield TestClient(app)
    app.dependency_overrides.clear()
