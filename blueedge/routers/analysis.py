from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..dependencies.db import get_db
from ..services.council_tax import analyze_council_tax_data_with_fallback, render_council_tax_report

router = APIRouter()


@router.get("/analysis/council-tax")
def council_tax_report(
    use_sample: bool = Query(default=True, alias="useSample"),
    db: Session = Depends(get_db),
):
    summary = analyze_council_tax_data_with_fallback(db, use_sample_if_empty=use_sample)
    return {"report": render_council_tax_report(summary), "summary": summary.to_dict()}
