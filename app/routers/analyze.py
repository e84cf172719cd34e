"""
Analyze API endpoint.

Stats over recent feedback, intent filtering, and an optional LLM insight.
"""

from fastapi import APIRouter, Depends

from app.models.schemas import AnalyzeRequest
from app.services.analysis_service import AnalysisService, get_analysis_service

router = APIRouter()


@router.post("/analyze")
async def analyze_feedback(
    body: AnalyzeRequest,
    service: AnalysisService = Depends(get_analysis_service),
):
    return await service.analyze(body.query)
