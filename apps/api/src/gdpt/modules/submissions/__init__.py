"""
Submissions Module

Parent-submitted child registrations and their review workflow
(PENDING -> APPROVED | REJECTED, REJECTED -> REVISED -> APPROVED | REJECTED).
Approval enrolls the child atomically.
"""

from gdpt.modules.submissions.models import StudentSubmission, SubmissionStatus

__all__ = ["StudentSubmission", "SubmissionStatus"]
