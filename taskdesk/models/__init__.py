"""Models package: import all models so metadata.create_all can discover them."""

from taskdesk.models.team import Team, TeamMember, TeamRoleEnum
from taskdesk.models.workflow_state import WorkflowState, StateTypeEnum
from taskdesk.models.label import Label, IssueLabel
from taskdesk.models.project import Project, ProjectStatusEnum
from taskdesk.models.issue import Issue, Comment, PriorityEnum, PRIORITY_RANK
from taskdesk.models.invitation import Invitation, InvitationStatusEnum
from taskdesk.models.conversation import ChatConversation, ChatMessage

__all__ = [
    "Team", "TeamMember", "TeamRoleEnum",
    "WorkflowState", "StateTypeEnum",
    "Label", "IssueLabel",
    "Project", "ProjectStatusEnum",
    "Issue", "Comment", "PriorityEnum", "PRIORITY_RANK",
    "Invitation", "InvitationStatusEnum",
    "ChatConversation", "ChatMessage",
]
