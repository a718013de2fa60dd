"""Analysis preview endpoint.

POST /analysis runs the classifier and urgency scorer over free text
without creating a case, so intake forms can show the likely category
and urgency while the client is still typing.
"""

from fastapi import APIRouter, Depends

from case_engine.api.dependencies import get_analyzer
from case_engine.models.domain import ClassificationHints
from case_engine.models.requests import AnalysisRequest
from case_engine.models.responses import AnalysisResponse
from case_engine.services.analysis.analyzer import CaseAnalyzer

router = APIRouter(prefix="/analysis", tags=["analysis"])


@router.post("", response_model=AnalysisResponse, summary="Preview case analysis")
async def analyze_text(
    body: AnalysisRequest,
    analyzer: CaseAnalyzer = Depends(get_analyzer),
) -> AnalysisResponse:
    classification, urgency = analyzer.analyze(body.text, ClassificationHints(category=body.category))
    return AnalysisResponse(classification=classification, urgency=urgency)
