"""GraphQL documents for primary listings and mutations.

Listings fetch core fields only; relations are attached by the Hydrator. Mutations
return the complete issue so a write costs exactly one round trip.
"""

ISSUE_CORE_FIELDS = """
    id
    identifier
    number
    title
    description
    url
    priority
    estimate
    createdAt
    updatedAt
"""

ISSUE_FULL_FIELDS = f"""
    {ISSUE_CORE_FIELDS}
    state {{ id name type }}
    team {{ id key name }}
    assignee {{ id name }}
    project {{ id name }}
    cycle {{ id name number }}
    projectMilestone {{ id name targetDate }}
    parent {{ id identifier }}
    labels {{ nodes {{ id name }} }}
"""

LIST_ISSUES = f"""
query ListIssues($first: Int!) {{
  issues(
    first: $first
    orderBy: updatedAt
    filter: {{ state: {{ type: {{ neq: "completed" }} }} }}
  ) {{
    nodes {{ {ISSUE_CORE_FIELDS} }}
  }}
}}
"""

SEARCH_ISSUES = f"""
query SearchIssues($term: String!, $first: Int!) {{
  searchIssues(term: $term, first: $first, includeArchived: false) {{
    nodes {{ {ISSUE_CORE_FIELDS} }}
  }}
}}
"""

FILTERED_ISSUES = f"""
query FilteredIssues($first: Int!, $filter: IssueFilter) {{
  issues(first: $first, filter: $filter, orderBy: updatedAt, includeArchived: false) {{
    nodes {{ {ISSUE_CORE_FIELDS} }}
  }}
}}
"""

CREATE_ISSUE = f"""
mutation CreateIssue($input: IssueCreateInput!) {{
  issueCreate(input: $input) {{
    success
    issue {{ {ISSUE_FULL_FIELDS} }}
  }}
}}
"""

UPDATE_ISSUE = f"""
mutation UpdateIssue($id: String!, $input: IssueUpdateInput!) {{
  issueUpdate(id: $id, input: $input) {{
    success
    issue {{ {ISSUE_FULL_FIELDS} }}
  }}
}}
"""

CREATE_COMMENT = """
mutation CreateComment($input: CommentCreateInput!) {
  commentCreate(input: $input) {
    success
    comment { id body createdAt updatedAt user { id name } }
  }
}
"""

LIST_TEAMS = """
query ListTeams($first: Int!) {
  teams(first: $first) {
    nodes { id key name description }
  }
}
"""

LIST_USERS = """
query ListUsers($first: Int!, $filter: UserFilter) {
  users(first: $first, filter: $filter) {
    nodes { id name displayName email active }
  }
}
"""

LIST_PROJECTS = """
query ListProjects($first: Int!) {
  projects(first: $first, orderBy: updatedAt, filter: { state: { neq: "completed" } }) {
    nodes { id name description state progress targetDate createdAt updatedAt }
  }
}
"""

LIST_LABELS = """
query ListLabels($first: Int!, $filter: IssueLabelFilter) {
  issueLabels(first: $first, filter: $filter) {
    nodes { id name color isGroup }
  }
}
"""

_CYCLE_FIELDS = "id name number startsAt endsAt isActive progress team { id key name }"

LIST_CYCLES = f"""
query ListCycles($first: Int!, $filter: CycleFilter) {{
  cycles(first: $first, filter: $filter) {{
    nodes {{ {_CYCLE_FIELDS} }}
  }}
}}
"""

GET_CYCLE = f"""
query GetCycle($id: String!, $issuesFirst: Int!) {{
  cycle(id: $id) {{
    {_CYCLE_FIELDS}
    issues(first: $issuesFirst) {{ nodes {{ {ISSUE_FULL_FIELDS} }} }}
  }}
}}
"""

_MILESTONE_FIELDS = "id name description targetDate sortOrder createdAt updatedAt project { id name }"

LIST_MILESTONES = f"""
query ListProjectMilestones($projectId: String!, $first: Int!) {{
  project(id: $projectId) {{
    id
    name
    projectMilestones(first: $first) {{ nodes {{ {_MILESTONE_FIELDS} }} }}
  }}
}}
"""

GET_MILESTONE = f"""
query GetProjectMilestone($id: String!, $issuesFirst: Int!) {{
  projectMilestone(id: $id) {{
    {_MILESTONE_FIELDS}
    issues(first: $issuesFirst) {{ nodes {{ {ISSUE_FULL_FIELDS} }} }}
  }}
}}
"""

CREATE_MILESTONE = f"""
mutation CreateProjectMilestone($input: ProjectMilestoneCreateInput!) {{
  projectMilestoneCreate(input: $input) {{
    success
    projectMilestone {{ {_MILESTONE_FIELDS} }}
  }}
}}
"""

UPDATE_MILESTONE = f"""
mutation UpdateProjectMilestone($id: String!, $input: ProjectMilestoneUpdateInput!) {{
  projectMilestoneUpdate(id: $id, input: $input) {{
    success
    projectMilestone {{ {_MILESTONE_FIELDS} }}
  }}
}}
"""
