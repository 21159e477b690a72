from datetime import datetime

from pydantic import BaseModel


class StatisticsSummary(BaseModel):
    total_submissions: int = 0
    on_time_submissions: int = 0
    late_submissions: int = 0
    graded_submissions: int = 0
    pending_submissions: int = 0
    average_score: float = 0.0
    grade_distribution: dict[str, int] = {}
    plagiarism_flagged: int = 0
    verified_submissions: int = 0


class AssignmentStatisticsRead(BaseModel):
    assignment_id: int
    computed_at: datetime
    summary: StatisticsSummary

    class Config:
        from_attributes = True
