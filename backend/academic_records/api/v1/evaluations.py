"""
API endpoints for grade launch and evaluation weight checks.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from academic_records.api.deps import get_actor_id, get_audit_trail
from academic_records.core.database import get_db
from academic_records.schemas.attendance import BatchResultResponse
from academic_records.schemas.grades import EvaluationWeight, GradeBatchRequest, WeightSummaryResponse
from academic_records.services.audit_trail import AuditTrail
from academic_records.services.batch_coordinator import BatchConsistencyCoordinator

router = APIRouter()


@router.post("/evaluations/{evaluation_id}/grades", response_model=BatchResultResponse)
def submit_evaluation_grades(
    evaluation_id: int,
    payload: GradeBatchRequest,
    db: Session = Depends(get_db),
    audit_trail: AuditTrail = Depends(get_audit_trail),
    actor_id: int = Depends(get_actor_id)
):
    """Launch grades for one evaluation; rejected unless the class weights total 100%."""
    coordinator = BatchConsistencyCoordinator(db, audit_trail)
    result = coordinator.submit_grades(evaluation_id, payload.items, actor_id)
    return BatchResultResponse(
        message="Grades recorded and averages updated",
        **result.to_dict()
    )


@router.get("/classes/{class_id}/weights", response_model=WeightSummaryResponse)
def get_class_weights(class_id: int, db: Session = Depends(get_db)):
    coordinator = BatchConsistencyCoordinator(db)
    evaluations = coordinator.class_evaluations(class_id)
    validation = coordinator.class_weights(class_id)
    return WeightSummaryResponse(
        class_id=class_id,
        is_valid=validation.is_valid,
        total=validation.total,
        difference=validation.difference,
        message=validation.describe(),
        evaluations=[
            EvaluationWeight(evaluation_id=e.id, code=e.code, weight=e.weight)
            for e in evaluations
        ],
    )
