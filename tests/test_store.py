import pytest

from taskdesk.core.exceptions import (
    ConflictError, EntityNotFoundError, UnauthorizedError, ValidationError,
)
from taskdesk.models import Comment, IssueLabel, Label, Project, Team, TeamMember, TeamRoleEnum, WorkflowState
from taskdesk.services.issue_service import IssueService
from taskdesk.services.label_service import LabelService
from taskdesk.services.member_service import MemberService
from taskdesk.services.project_service import ProjectService
from taskdesk.services.team_service import TeamService
from taskdesk.services.workflow_state_service import WorkflowStateService

from conftest import ADMIN, DEVELOPER, OUTSIDER, VIEWER


# ---- Teams ----

def test_create_team_seeds_default_states_and_admin(db, team):
    states = WorkflowStateService.list_states(db, team.id)
    assert [s.name for s in states] == ["Backlog", "Todo", "In Progress", "Done"]
    assert [s.position for s in states] == [0, 1, 2, 3]

    admin = MemberService.get_membership(db, team.id, ADMIN.user_id)
    assert admin.role == TeamRoleEnum.admin
    assert admin.user_name == "Alice Admin"


def test_team_key_is_validated(db):
    with pytest.raises(ValidationError):
        TeamService.create(db, "Bad", "x", ADMIN)
    with pytest.raises(ValidationError):
        TeamService.create(db, "  ", "OK", ADMIN)


def test_list_for_user_returns_roles(db, team, other_team):
    assert [(t.key, role) for t, role in TeamService.list_for_user(db, VIEWER.user_id)] == [("ENG", "viewer")]
    assert [(t.key, role) for t, role in TeamService.list_for_user(db, OUTSIDER.user_id)] == [("MKT", "admin")]


def test_masked_api_key(db, team):
    assert TeamService.masked_api_key(team) is None
    team = TeamService.set_llm_api_key(db, team.id, "sk-abcdefghijklmnop")
    assert TeamService.masked_api_key(team) == "sk-abcde...mnop"
    team = TeamService.set_llm_api_key(db, team.id, "short")
    assert TeamService.masked_api_key(team) == "*****"


def test_delete_team_removes_everything(db, team, make_issue):
    label = LabelService.create(db, team.id, "Bug")
    project = ProjectService.create(db, team.id, "Web", "WEB")
    issue = make_issue("Broken", project_id=project.id, label_ids=[label.id])
    IssueService.add_comment(db, team.id, issue.id, ADMIN, "Looking")

    TeamService.delete(db, team.id)

    assert db.query(Team).count() == 0
    for model in (WorkflowState, Label, Project, TeamMember, Comment, IssueLabel):
        assert db.query(model).count() == 0


def test_membership_check_after_team_delete_uses_real_row(db, team):
    # The known-teams cache still holds the id; provisioning must not resurrect the team
    TeamService.ensure_exists(db, team.id)
    TeamService.delete(db, team.id)
    with pytest.raises(EntityNotFoundError):
        MemberService.require_membership(db, team.id, OUTSIDER)
    assert db.query(TeamMember).count() == 0


# ---- Members ----

def test_require_membership_checks_role(db, team):
    assert MemberService.require_membership(db, team.id, VIEWER).role == TeamRoleEnum.viewer
    with pytest.raises(UnauthorizedError):
        MemberService.require_membership(db, team.id, VIEWER, "developer")
    with pytest.raises(UnauthorizedError):
        MemberService.require_membership(db, team.id, OUTSIDER)


def test_first_user_of_empty_team_becomes_admin(db):
    team = Team(name="Fresh", key="NEW")
    db.add(team)
    db.commit()

    member = MemberService.require_membership(db, team.id, OUTSIDER, "admin")
    assert member.role == TeamRoleEnum.admin
    with pytest.raises(UnauthorizedError):
        MemberService.require_membership(db, team.id, DEVELOPER)


def test_missing_team_is_not_found(db):
    with pytest.raises(EntityNotFoundError):
        MemberService.require_membership(db, "no-such-team", ADMIN)


def test_team_keeps_at_least_one_admin(db, team):
    admin = MemberService.get_membership(db, team.id, ADMIN.user_id)
    with pytest.raises(ConflictError):
        MemberService.update_role(db, team.id, admin.id, "developer")
    with pytest.raises(ConflictError):
        MemberService.remove(db, team.id, admin.id)

    dev = MemberService.get_membership(db, team.id, DEVELOPER.user_id)
    MemberService.update_role(db, team.id, dev.id, "admin")
    MemberService.update_role(db, team.id, admin.id, "viewer")
    assert MemberService.get_membership(db, team.id, ADMIN.user_id).role == TeamRoleEnum.viewer


def test_invalid_role_is_rejected(db, team):
    dev = MemberService.get_membership(db, team.id, DEVELOPER.user_id)
    with pytest.raises(ValidationError):
        MemberService.update_role(db, team.id, dev.id, "owner")


def test_duplicate_membership_conflicts(db, team):
    with pytest.raises(ConflictError):
        MemberService.add(db, team.id, DEVELOPER.user_id, "Dan again")


# ---- Team scoping ----

def test_reads_and_writes_are_team_scoped(db, team, other_team, make_issue):
    issue = make_issue("Secret")
    with pytest.raises(EntityNotFoundError):
        IssueService.get(db, other_team.id, issue.id)
    with pytest.raises(EntityNotFoundError):
        IssueService.update(db, other_team.id, issue.id, {"title": "Hijacked"})
    with pytest.raises(EntityNotFoundError):
        IssueService.delete(db, other_team.id, issue.id)

    db.refresh(issue)
    assert issue.title == "Secret"


def test_issue_rejects_state_from_another_team(db, team, other_team):
    foreign_state = WorkflowStateService.list_states(db, other_team.id)[0]
    with pytest.raises(EntityNotFoundError):
        IssueService.create(db, team.id, ADMIN, "Nope", foreign_state.id)


def test_out_of_team_labels_and_projects_are_dropped(db, team, other_team, make_issue):
    own_label = LabelService.create(db, team.id, "Bug")
    foreign_label = LabelService.create(db, other_team.id, "Bug")
    foreign_project = ProjectService.create(db, other_team.id, "Ads", "ADS")

    issue = make_issue("Mixed", project_id=foreign_project.id, label_ids=[own_label.id, foreign_label.id])
    assert issue.project_id is None
    assert [label.id for label in issue.labels] == [own_label.id]


# ---- Uniqueness ----

def test_names_and_keys_are_unique_per_team(db, team, other_team):
    LabelService.create(db, team.id, "Bug")
    with pytest.raises(ConflictError):
        LabelService.create(db, team.id, "Bug")
    LabelService.create(db, other_team.id, "Bug")

    ProjectService.create(db, team.id, "Web", "web")
    with pytest.raises(ConflictError):
        ProjectService.create(db, team.id, "Website", "WEB")

    with pytest.raises(ConflictError):
        WorkflowStateService.create(db, team.id, "Todo", "unstarted")


def test_workflow_state_appends_after_last_column(db, team):
    state = WorkflowStateService.create(db, team.id, "Review", "started")
    assert state.position == 4
    with pytest.raises(ValidationError):
        WorkflowStateService.create(db, team.id, "Odd", "sideways")


def test_project_defaults(db, team):
    project = ProjectService.create(db, team.id, "Web", "web")
    assert project.key == "WEB"
    assert project.color == "#6366f1"
    assert project.status.value == "active"
    with pytest.raises(ValidationError):
        ProjectService.create(db, team.id, "Bad", "has space")


# ---- Issues ----

def test_issue_defaults(db, team, make_issue):
    issue = make_issue("Fix login")
    assert issue.number == 1
    assert issue.priority.value == "none"
    assert issue.creator_id == ADMIN.user_id
    assert issue.completed_at is None


def test_issue_title_validation(db, team, make_issue):
    with pytest.raises(ValidationError):
        make_issue("   ")
    with pytest.raises(ValidationError):
        make_issue("x" * 256)
    with pytest.raises(ValidationError):
        make_issue("Fine", priority="critical")


def test_assignee_name_falls_back_to_member(db, team, make_issue):
    issue = make_issue("Assigned", assignee_id=DEVELOPER.user_id)
    assert issue.assignee_name == "Dev Dan"
    issue = IssueService.update(db, team.id, issue.id, {"assignee_id": "unassigned"})
    assert issue.assignee_id is None
    assert issue.assignee_name is None


def test_completed_at_follows_state_type(db, team, states, make_issue):
    issue = make_issue("Ship it")
    issue = IssueService.update(db, team.id, issue.id, {"workflow_state_id": states["Done"].id})
    completed_at = issue.completed_at
    assert completed_at is not None

    issue = IssueService.update(db, team.id, issue.id, {"workflow_state_id": states["Done"].id})
    assert issue.completed_at == completed_at

    issue = IssueService.update(db, team.id, issue.id, {"workflow_state_id": states["Todo"].id})
    assert issue.completed_at is None

    created_done = make_issue("Already done", state="Done")
    assert created_done.completed_at is not None


def test_update_replaces_labels(db, team, make_issue):
    bug = LabelService.create(db, team.id, "Bug")
    ui = LabelService.create(db, team.id, "UI")
    issue = make_issue("Labels", label_ids=[bug.id])
    issue = IssueService.update(db, team.id, issue.id, {"label_ids": [ui.id, ui.id]})
    assert [label.name for label in issue.labels] == ["UI"]


def test_delete_issue_removes_comments_and_label_links(db, team, make_issue):
    bug = LabelService.create(db, team.id, "Bug")
    issue = make_issue("Gone soon", label_ids=[bug.id])
    IssueService.add_comment(db, team.id, issue.id, ADMIN, "bye")

    IssueService.delete(db, team.id, issue.id)

    assert db.query(Comment).count() == 0
    assert db.query(IssueLabel).count() == 0
    assert db.query(Label).count() == 1


# ---- Delete policies ----

def test_delete_project_keeps_issues_without_project(db, team, make_issue):
    project = ProjectService.create(db, team.id, "Web", "WEB")
    issue = make_issue("Orphan", project_id=project.id)

    ProjectService.delete(db, team.id, project.id)

    db.expire_all()
    assert IssueService.get(db, team.id, issue.id).project_id is None


def test_delete_label_detaches_it(db, team, make_issue):
    bug = LabelService.create(db, team.id, "Bug")
    issue = make_issue("Tagged", label_ids=[bug.id])

    LabelService.delete(db, team.id, bug.id)

    db.expire_all()
    assert IssueService.get(db, team.id, issue.id).labels == []


def test_delete_state_in_use_is_refused(db, team, states, make_issue):
    make_issue("Blocking", state="Todo")
    with pytest.raises(ConflictError):
        WorkflowStateService.delete(db, team.id, states["Todo"].id)

    WorkflowStateService.delete(db, team.id, states["Backlog"].id)
    assert "Backlog" not in [s.name for s in WorkflowStateService.list_states(db, team.id)]


# ---- Comments ----

def test_comments_are_listed_in_order_and_author_only_deletable(db, team, make_issue):
    issue = make_issue("Discuss")
    first = IssueService.add_comment(db, team.id, issue.id, ADMIN, "first")
    IssueService.add_comment(db, team.id, issue.id, DEVELOPER, "second")

    assert [c.content for c in IssueService.list_comments(db, team.id, issue.id)] == ["first", "second"]

    with pytest.raises(UnauthorizedError):
        IssueService.delete_comment(db, team.id, issue.id, first.id, DEVELOPER.user_id)
    IssueService.delete_comment(db, team.id, issue.id, first.id, ADMIN.user_id)
    with pytest.raises(EntityNotFoundError):
        IssueService.delete_comment(db, team.id, issue.id, first.id, ADMIN.user_id)

    with pytest.raises(ValidationError):
        IssueService.add_comment(db, team.id, issue.id, ADMIN, "  ")


def test_team_stats(db, team, make_issue):
    project = ProjectService.create(db, team.id, "Web", "WEB")
    make_issue("One", priority="high", project_id=project.id)
    make_issue("Two", state="Done", priority="high")
    make_issue("Three", state="Done")

    stats = TeamService.stats(db, team.id)
    assert stats["stats"]["members"] == 3
    assert stats["stats"]["projects"] == 1
    assert stats["stats"]["activeProjects"] == 1
    assert stats["stats"]["totalIssues"] == 3
    assert stats["stats"]["completedIssues"] == 2
    assert stats["stats"]["activeIssues"] == 1
    assert stats["stats"]["completionRate"] == 67
    assert {"status": "Done", "count": 2} in stats["statusBreakdown"]
    assert {"priority": "high", "count": 2} in stats["priorityBreakdown"]
    assert len(stats["recentIssues"]) == 3
