from taskdesk.core.security import create_access_token, get_current_principal
from taskdesk.main import app
from taskdesk.models import Team, TeamRoleEnum
from taskdesk.services.conversation_service import ConversationService
from taskdesk.services.issue_service import IssueService
from taskdesk.services.member_service import MemberService
from taskdesk.services.project_service import ProjectService
from taskdesk.services.team_service import TeamService

from conftest import ADMIN, DEVELOPER, OUTSIDER, VIEWER


def _url(team, path=""):
    return f"/api/teams/{team.id}{path}"


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_is_echoed(client):
    response = client.get("/api/health", headers={"X-Request-Id": "req-123"})
    assert response.headers["X-Request-Id"] == "req-123"
    assert client.get("/api/health").headers["X-Request-Id"]


# ---- Teams ----

def test_create_and_list_teams(client):
    created = client.post("/api/teams", json={"name": "Design", "key": "dsn"})
    assert created.status_code == 201
    assert created.json()["key"] == "DSN"
    assert created.json()["role"] == "admin"

    listed = client.get("/api/teams").json()
    assert [t["name"] for t in listed] == ["Design"]


def test_unknown_team_is_not_found(client):
    response = client.get("/api/teams/no-such-team/issues")
    assert response.status_code == 404
    assert response.json()["errorKind"] == "not_found"


def test_outsiders_are_forbidden(client, team, acting):
    acting.principal = OUTSIDER
    response = client.get(_url(team, "/issues"))
    assert response.status_code == 403
    assert response.json()["errorKind"] == "unauthorized"


def test_team_stats(client, team, make_issue):
    make_issue("Open")
    make_issue("Closed", state="Done")
    stats = client.get(_url(team, "/stats")).json()["stats"]
    assert stats["totalIssues"] == 2
    assert stats["completedIssues"] == 1


# ---- Issues ----

def test_issue_lifecycle(client, team, states):
    created = client.post(_url(team, "/issues"), json={"title": "Fix login", "workflowStateId": "Todo"})
    assert created.status_code == 201
    issue = created.json()["issue"]
    assert issue["number"] == 1
    assert issue["workflowStateId"] == states["Todo"].id

    fetched = client.get(_url(team, f"/issues/{issue['id']}"))
    assert fetched.json()["identifier"] == "ENG-1"

    patched = client.patch(_url(team, f"/issues/{issue['id']}"), json={"priority": "high", "newTitle": "Fix login!"})
    assert patched.status_code == 200
    assert patched.json()["issue"]["priority"] == "high"
    assert patched.json()["issue"]["title"] == "Fix login!"

    deleted = client.delete(_url(team, f"/issues/{issue['id']}"))
    assert deleted.status_code == 200
    assert client.get(_url(team, f"/issues/{issue['id']}")).status_code == 404


def test_list_issues_with_filters_and_stats(client, team, states, make_issue):
    make_issue("Fix login", priority="urgent", assignee_id=DEVELOPER.user_id)
    make_issue("Dark mode", state="Backlog")
    make_issue("Login copy", state="Done")

    body = client.get(_url(team, "/issues"), params={"search": "login", "sortField": "title",
                                                     "sortDirection": "asc"}).json()
    assert [i["title"] for i in body["issues"]] == ["Fix login", "Login copy"]
    assert body["matched"] == 2
    assert body["total"] == 3

    unassigned = client.get(_url(team, "/issues"), params=[("assignee", "unassigned")]).json()
    assert {i["title"] for i in unassigned["issues"]} == {"Dark mode", "Login copy"}

    stats = client.get(_url(team, "/issues"), params={"stats": "true", "priority": "urgent"}).json()
    assert stats["total"] == 1
    assert stats["byPriority"]["urgent"] == 1


def test_error_kinds_map_to_status_codes(client, team, make_issue):
    issue = make_issue("Existing")

    missing = client.post(_url(team, "/issues"), json={"title": "x", "workflowStateId": "Doing"})
    assert missing.status_code == 404
    assert missing.json()["detail"] == 'No workflow state found matching "Doing"'
    assert missing.json()["errorKind"] == "not_found"
    assert missing.json()["field"] == "workflowStateId"

    no_changes = client.patch(_url(team, f"/issues/{issue.id}"), json={})
    assert no_changes.status_code == 400
    assert no_changes.json()["errorKind"] == "validation"

    malformed = client.post(_url(team, "/issues"), json={"workflowStateId": "Todo"})
    assert malformed.status_code == 422


def test_ambiguous_reference_is_a_conflict(client, db, team):
    ProjectService.create(db, team.id, "Web", "WWW")
    ProjectService.create(db, team.id, "Frontend", "WEB")

    response = client.post(_url(team, "/issues"), json={
        "title": "x", "workflowStateId": "Todo", "projectId": "web",
    })

    assert response.status_code == 409
    assert response.json()["errorKind"] == "ambiguous"
    assert len(response.json()["candidates"]) == 2


def test_viewers_cannot_write(client, team, acting):
    acting.principal = VIEWER
    assert client.get(_url(team, "/issues")).status_code == 200
    response = client.post(_url(team, "/issues"), json={"title": "x", "workflowStateId": "Todo"})
    assert response.status_code == 403


def test_only_authors_delete_comments(client, db, team, acting, make_issue):
    issue = make_issue("Discuss")
    comment = client.post(_url(team, f"/issues/{issue.id}/comments"), json={"content": "First!"})
    assert comment.status_code == 201

    acting.principal = DEVELOPER
    path = f"/issues/{issue.id}/comments/{comment.json()['id']}"
    assert client.delete(_url(team, path)).status_code == 403

    acting.principal = ADMIN
    assert client.delete(_url(team, path)).status_code == 200
    assert IssueService.list_comments(db, team.id, issue.id) == []


# ---- Catalogue data ----

def test_workflow_state_in_use_cannot_be_deleted(client, team, states, make_issue):
    make_issue("Blocking", state="Todo")
    response = client.delete(_url(team, f"/workflow-states/{states['Todo'].id}"))
    assert response.status_code == 409

    assert client.delete(_url(team, f"/workflow-states/{states['Backlog'].id}")).status_code == 200


def test_projects_via_rest(client, team):
    created = client.post(_url(team, "/projects"), json={"name": "Mobile", "key": "mob"})
    assert created.status_code == 201
    project = created.json()["project"]

    fetched = client.get(_url(team, f"/projects/{project['id']}")).json()
    assert fetched["key"] == "MOB"

    listed = client.get(_url(team, "/projects")).json()
    assert listed["projects"][0]["issueCount"] == 0


# ---- Auth ----

def test_real_tokens_are_accepted(client, team):
    app.dependency_overrides.pop(get_current_principal)
    token = create_access_token(ADMIN.user_id, ADMIN.display_name, ADMIN.email)

    response = client.get(_url(team, "/issues"), headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200

    assert client.get(_url(team, "/issues")).status_code == 401
    bad = client.get(_url(team, "/issues"), headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


def test_first_caller_of_an_empty_team_becomes_admin(client, db, acting):
    team = Team(name="Solo", key="SOLO")
    db.add(team)
    db.commit()

    acting.principal = DEVELOPER
    assert client.get(_url(team, "/issues")).status_code == 200
    assert MemberService.get_membership(db, team.id, DEVELOPER.user_id).role == TeamRoleEnum.admin

    acting.principal = VIEWER
    assert client.get(_url(team, "/issues")).status_code == 403


# ---- Invitations ----

def test_invitations_via_rest(client, team, mailer, acting):
    created = client.post(_url(team, "/invitations"), json={"email": "Nina@Example.com", "role": "viewer"})
    assert created.status_code == 201
    invitation = created.json()["invitation"]
    assert len(mailer.sent) == 1

    duplicate = client.post(_url(team, "/invitations"), json={"email": "nina@example.com"})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Invitation already sent to this email"

    app.dependency_overrides.pop(get_current_principal)
    public = client.get(f"/api/invitations/{invitation['id']}")
    assert public.status_code == 200
    assert public.json()["email"] == "nina@example.com"
    assert public.json()["status"] == "pending"


def test_developers_cannot_invite(client, team, acting):
    acting.principal = DEVELOPER
    response = client.post(_url(team, "/invitations"), json={"email": "x@example.com"})
    assert response.status_code == 403


# ---- Chat ----

def test_chat_without_any_api_key(client, team):
    response = client.post(_url(team, "/chat"), json={"message": "hi"})
    assert response.status_code == 400
    assert response.json()["detail"] == "No LLM API key configured. Please add your API key."


def test_chat_turn(client, team, provider, issue_count):
    provider.queue_tool("createIssue", {"title": "From chat", "workflowStateId": "Todo"})
    provider.queue_reply("Done, created #1.")

    response = client.post(_url(team, "/chat"), json={"message": "File an issue", "api_key": "sk-user"})

    assert response.status_code == 200
    body = response.json()
    assert body["reply"] == "Done, created #1."
    assert body["title"] == "File an issue"
    assert body["steps"] == 1
    assert provider.api_keys == ["sk-user"]
    assert issue_count(team.id) == 1

    detail = client.get(_url(team, f"/chat/conversations/{body['conversation_id']}")).json()
    assert [m["role"] for m in detail["messages"]] == ["user", "assistant", "tool", "assistant"]


def test_team_key_is_used_for_chat(client, db, team, provider):
    TeamService.set_llm_api_key(db, team.id, "sk-team")
    assert client.post(_url(team, "/chat"), json={"message": "hi"}).status_code == 200
    assert provider.api_keys == ["sk-team"]


def test_conversations_are_private(client, db, team, acting):
    created = client.post(_url(team, "/chat/conversations"), json={"title": "Planning"})
    assert created.status_code == 201
    conversation_id = created.json()["id"]

    acting.principal = DEVELOPER
    assert client.get(_url(team, f"/chat/conversations/{conversation_id}")).status_code == 403
    assert client.get(_url(team, "/chat/conversations")).json() == []

    acting.principal = ADMIN
    renamed = client.patch(_url(team, f"/chat/conversations/{conversation_id}"), json={"title": "Roadmap"})
    assert renamed.json()["title"] == "Roadmap"
    assert client.delete(_url(team, f"/chat/conversations/{conversation_id}")).status_code == 200
    assert ConversationService.list_conversations(db, team.id, ADMIN.user_id) == []
