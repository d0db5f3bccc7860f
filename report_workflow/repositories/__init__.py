from report_workflow.repositories.attachments import InMemoryAttachmentsRepository, PostgresAttachmentsRepository
from report_workflow.repositories.comments import InMemoryCommentsRepository, PostgresCommentsRepository
from report_workflow.repositories.profiles import InMemoryProfilesRepository, PostgresProfilesRepository
from report_workflow.repositories.projects import InMemoryProjectsRepository, PostgresProjectsRepository
from report_workflow.repositories.reports import InMemoryReportsRepository, PostgresReportsRepository

__all__ = [
    "InMemoryAttachmentsRepository",
    "PostgresAttachmentsRepository",
    "InMemoryCommentsRepository",
    "PostgresCommentsRepository",
    "InMemoryProfilesRepository",
    "PostgresProfilesRepository",
    "InMemoryProjectsRepository",
    "PostgresProjectsRepository",
    "InMemoryReportsRepository",
    "PostgresReportsRepository",
]
