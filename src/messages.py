"""Chat message templates used by the triage policies.

Templates use str.format placeholders. Keeping them in one module keeps
the wording consistent between the room announcements and the private
notifications.
"""

# Announced in the project's room when a non-special user attaches or moves a card
PROJECT_CONFIRMATION = (
    "{issue_url} has been attached to column {column_id} of the project {project_url}. "
    "The change will be reverted in {seconds} seconds unless a project owner confirms it. "
    "To confirm: `triagebot confirm {issue_id} {column_id}`. "
    "To deny: `triagebot deny {issue_id} {column_id}`."
)

# Sent privately to the actor whose attachment was rolled back
ISSUE_REVERT_PROJECT_NOTIFICATION = (
    "The project attachment of {issue_url} was not confirmed by a project owner "
    "and has been reverted."
)

# Sent to the default room while an issue has no project at all
WILL_CLOSE_FOR_NO_PROJECT = (
    "{author}, {issue_url} has no project attached. It will be closed and moved to the "
    "triage repository if no project is attached soon."
)

# Sent to the project's room when a backlog column is needed but missing
PROJECT_NEEDS_BACKLOG = (
    "{owner}, the project {project_url} needs a backlog column so issues can be "
    "attached to it automatically."
)
