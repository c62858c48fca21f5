"""
Threat Engine REST API Endpoints
"""

import logging
from typing import Optional, Dict, Any, List

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field

from ..coordinator import SecurityCoordinator
from ..models import InboundMessage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/security", tags=["security"])

# Coordinator dependency - set by the hosting application
_coordinator: Optional[SecurityCoordinator] = None


def get_coordinator() -> SecurityCoordinator:
    """Get the security coordinator."""
    if _coordinator is None:
        raise HTTPException(status_code=500, detail="Security coordinator not initialized")
    return _coordinator


def set_coordinator(coordinator: Optional[SecurityCoordinator]) -> None:
    """Set the security coordinator (called by the hosting application)."""
    global _coordinator
    _coordinator = coordinator


# Pydantic models for API
class AnalyzeRequest(BaseModel):
    """Request to analyze one email."""
    id: str = ""
    from_address: str = Field(default="", alias="from")
    to: str = ""
    subject: str = ""
    body: str = ""
    raw_message: str = ""
    client_address: Optional[str] = None
    helo_domain: Optional[str] = None

    model_config = {"populate_by_name": True}


class TrainRequest(BaseModel):
    """Request to train the classifier with one labelled email."""
    subject: str = ""
    body: str = ""
    sender: str = ""
    is_spam: bool


class RulesImportResponse(BaseModel):
    """Result of a rule import."""
    imported: int
    total: int


@router.post("/analyze")
async def analyze_email(request: AnalyzeRequest, coordinator=Depends(get_coordinator)) -> Dict[str, Any]:
    """
    Analyze an email and return its security report.
    """
    message = InboundMessage(
        id=request.id,
        from_address=request.from_address,
        to=request.to,
        subject=request.subject,
        body=request.body,
        raw_message=request.raw_message,
        client_address=request.client_address,
        helo_domain=request.helo_domain,
    )
    report = await coordinator.analyze(message)
    return report.to_dict()


@router.get("/rules")
async def list_rules(coordinator=Depends(get_coordinator)) -> List[Dict[str, Any]]:
    """List rules in evaluation order."""
    return coordinator.get_rule_engine().export_rules()


@router.post("/rules", response_model=RulesImportResponse)
async def import_rules(rules: List[Dict[str, Any]], coordinator=Depends(get_coordinator)):
    """Add rules from their serialized form."""
    engine = coordinator.get_rule_engine()
    try:
        imported = engine.import_rules(rules)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RulesImportResponse(imported=imported, total=len(engine.get_rules()))


@router.get("/classifier/stats")
async def classifier_stats(coordinator=Depends(get_coordinator)) -> Dict[str, int]:
    """Get classifier training statistics."""
    return coordinator.get_classifier().get_stats()


@router.post("/classifier/train")
async def train_classifier(request: TrainRequest, coordinator=Depends(get_coordinator)) -> Dict[str, int]:
    """Train the classifier with one labelled email."""
    classifier = coordinator.get_classifier()
    if request.is_spam:
        classifier.train_spam(request.subject, request.body, request.sender)
    else:
        classifier.train_ham(request.subject, request.body, request.sender)
    logger.info(f"Trained classifier with one {'spam' if request.is_spam else 'ham'} message")
    return classifier.get_stats()
