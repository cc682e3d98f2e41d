from pydantic import BaseModel, Field
from typing import Optional, List


class GradeItem(BaseModel):
    student_id: str = Field(..., min_length=8, max_length=8, description="Student registration number")
    grade: float = Field(..., ge=0, le=10)
    note: Optional[str] = Field(None, max_length=500)


class GradeBatchRequest(BaseModel):
    items: List[GradeItem] = Field(..., min_length=1)


class EvaluationWeight(BaseModel):
    evaluation_id: int
    code: str
    weight: int

    class Config:
        from_attributes = True


class WeightSummaryResponse(BaseModel):
    class_id: int
    is_valid: bool
    total: int
    difference: int
    message: Optional[str] = None
    evaluations: List[EvaluationWeight] = []
